from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Literal, Optional

class Settings(BaseSettings):
    # "local" keeps everything under data_dir, "aws" uses S3 + DynamoDB
    storage_backend: Literal["local", "aws"] = Field("local")
    data_dir: str = Field("data")

    aws_region: str = Field("us-east-1")
    s3_bucket: str = Field("image-gallery-bucket")
    s3_prefix: str = Field("images")
    dynamodb_table: str = Field("ImageGallery")
    aws_endpoint_url: Optional[str] = Field(None)

    aws_access_key_id: str = Field("test")
    aws_secret_access_key: str = Field("test")

    app_title: str = Field("Image Gallery")

    search_default_limit: int = Field(50)
    search_max_limit: int = Field(100)
    max_upload_bytes: int = Field(5 * 1024 * 1024)

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="allow",  # tolerate unknown vars if needed
    )

settings = Settings()
