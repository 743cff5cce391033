"""
외부 클라이언트 예외 클래스 정의
"""


class ClientError(Exception):
    """클라이언트 기본 예외"""
    pass


class AssetFetchError(ClientError):
    """에셋 다운로드 실패 (응답 오류 또는 빈 응답)"""
    def __init__(self, locator: str, reason: str):
        self.locator = locator
        self.reason = reason
        self.message = f"Failed to fetch asset '{locator}': {reason}"
        super().__init__(self.message)


class InferenceError(ClientError):
    """임베딩 추론 실패 (서비스 오류, 빈 벡터, 차원 불일치)"""
    def __init__(self, reason: str, model: str | None = None):
        self.reason = reason
        self.model = model
        self.message = f"Inference failed ({model}): {reason}" if model else f"Inference failed: {reason}"
        super().__init__(self.message)
