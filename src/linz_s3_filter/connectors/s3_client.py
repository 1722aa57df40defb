"""S3 client connector for public bucket access."""

from typing import Any

import boto3
from botocore import UNSIGNED
from botocore.config import Config
from pydantic import BaseModel

from linz_s3_filter.connectors.settings import SettingsResource


class S3Resource(BaseModel):
    """S3 resource for creating boto3 S3 clients."""

    settings: SettingsResource

    def create_client(self) -> Any:
        """Create S3 client.

        Anonymous access sends unsigned requests, so no credentials are looked up.

        :returns: Configured S3 client
        """
        if self.settings.aws_skip_signature:
            config = Config(signature_version=UNSIGNED, max_pool_connections=50)
        else:
            config = Config(max_pool_connections=50)

        session = boto3.Session(region_name=self.settings.aws_region)
        return session.client("s3", config=config)

    def get_client(self) -> Any:
        """Get S3 client instance.

        :returns: Configured S3 client
        """
        return self.create_client()
