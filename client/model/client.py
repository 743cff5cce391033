"""
외부 클라이언트 설정 모델
"""

from typing import Literal

from pydantic import BaseModel, Field


class S3Config(BaseModel):
    """S3 호환 스토리지 (AWS S3, DigitalOcean Spaces) 접속 설정"""
    bucket: str | None = Field(default=None, description="미설정 시 BUCKET_NAME 환경 변수")
    endpoint_url: str | None = Field(default=None, description="예: https://nyc3.digitaloceanspaces.com")
    region_name: str | None = None
    access_key_id: str | None = Field(default=None, description="미설정 시 boto3 기본 자격 증명 체인")
    secret_access_key: str | None = None
    max_attempts: int = Field(default=3, ge=1, description="botocore 요청 재시도 횟수")


class FetcherConfig(BaseModel):
    """에셋 다운로드 설정"""
    type: Literal["http", "s3"] = "http"
    base_url: str | None = Field(default=None, description="상대 경로 locator에 붙일 기본 URL")
    timeout_seconds: float = Field(default=30.0, gt=0)
    connect_timeout_seconds: float = Field(default=5.0, gt=0)
    headers: dict[str, str] = Field(default_factory=dict)
    s3: S3Config = Field(default_factory=S3Config)


class InfererConfig(BaseModel):
    """임베딩 추론 서비스 설정"""
    base_url: str = "http://localhost:11434"
    endpoint: str = "/api/embed"
    model: str = "llama3.2-vision"
    timeout_seconds: float = Field(default=120.0, gt=0)
    connect_timeout_seconds: float = Field(default=5.0, gt=0)
    dimensions: int | None = Field(default=None, ge=1, description="설정 시 벡터 길이 검증")
