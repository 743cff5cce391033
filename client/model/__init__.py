from client.model.client import FetcherConfig, InfererConfig, S3Config

__all__ = ["FetcherConfig", "InfererConfig", "S3Config"]
