"""
AWS Client Factory.

Builds boto3 clients for EC2, ELBv2 and STS, optionally through a
cross-account role. Assumed-role sessions are cached per (role, region) and
rebuilt shortly before their credentials expire; a deployment can outlive a
one-hour STS session while it waits on graph builds.

Exports:
    AwsClientFactory: Session cache and client builder
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from config import get_config
from config.defaults import AppDefaults
from exceptions import ValidationError
from util_logger import LoggerFactory, ComponentType

logger = LoggerFactory.create_logger(ComponentType.FACTORY, "AwsClientFactory")

_RETRY_CONFIG = BotoConfig(retries={'max_attempts': 10, 'mode': 'standard'})


class AwsClientFactory:
    """
    Cached boto3 sessions keyed by (role_arn, region).

    Usage:
        factory = AwsClientFactory()
        ec2 = factory.client('ec2', role_arn=descriptor.role_arn, region=descriptor.region)
    """

    def __init__(
        self,
        profile_name: Optional[str] = None,
        default_region: Optional[str] = None,
        session_duration_seconds: int = AppDefaults.AWS_SESSION_DURATION_SECONDS,
        refresh_margin_seconds: int = AppDefaults.AWS_SESSION_REFRESH_MARGIN_SECONDS
    ):
        config = get_config()
        self.profile_name = profile_name if profile_name is not None else config.aws_profile
        self.default_region = default_region or config.aws_region
        self.session_duration_seconds = session_duration_seconds
        self.refresh_margin = timedelta(seconds=refresh_margin_seconds)
        self._lock = threading.Lock()
        self._sessions: Dict[Tuple[Optional[str], str], Tuple[boto3.session.Session, Optional[datetime]]] = {}

    def _base_session(self, region: str) -> boto3.session.Session:
        return boto3.session.Session(profile_name=self.profile_name, region_name=region)

    def session(self, role_arn: Optional[str] = None, region: Optional[str] = None) -> boto3.session.Session:
        """
        Session for the given role/region, assuming the role when needed.

        Raises:
            ValidationError: The role cannot be assumed
        """
        region = region or self.default_region
        key = (role_arn, region)

        with self._lock:
            cached = self._sessions.get(key)
            if cached is not None:
                session, expires_at = cached
                if expires_at is None or datetime.now(timezone.utc) + self.refresh_margin < expires_at:
                    return session
                logger.info(f"Refreshing assumed-role session for {role_arn} ({region})")

            if role_arn is None:
                session = self._base_session(region)
                self._sessions[key] = (session, None)
                return session

            session, expires_at = self._assume_role(role_arn, region)
            self._sessions[key] = (session, expires_at)
            return session

    def _assume_role(self, role_arn: str, region: str) -> Tuple[boto3.session.Session, datetime]:
        sts = self._base_session(region).client('sts', config=_RETRY_CONFIG)
        try:
            response = sts.assume_role(
                RoleArn=role_arn,
                RoleSessionName=f"otp-deployer-{datetime.now(timezone.utc):%Y%m%d%H%M%S}",
                DurationSeconds=self.session_duration_seconds
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"❌ Failed to assume role {role_arn}: {e}")
            raise ValidationError(f"Could not assume role {role_arn}: {e}") from e

        credentials = response['Credentials']
        session = boto3.session.Session(
            aws_access_key_id=credentials['AccessKeyId'],
            aws_secret_access_key=credentials['SecretAccessKey'],
            aws_session_token=credentials['SessionToken'],
            region_name=region
        )
        logger.info(f"✅ Assumed role {role_arn} (expires {credentials['Expiration']})")
        return session, credentials['Expiration']

    def client(self, service_name: str, role_arn: Optional[str] = None, region: Optional[str] = None) -> Any:
        return self.session(role_arn, region).client(service_name, config=_RETRY_CONFIG)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
