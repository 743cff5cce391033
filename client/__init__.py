from client.base import BaseAssetFetcher, BaseEmbeddingInferer
from client.exception import ClientError, AssetFetchError, InferenceError
from client.fetcher import HttpAssetFetcher
from client.inferer import OllamaEmbeddingInferer, encode_asset
from client.model.client import FetcherConfig, InfererConfig, S3Config
from client.s3 import S3AssetFetcher

__all__ = [
    "BaseAssetFetcher",
    "BaseEmbeddingInferer",
    "HttpAssetFetcher",
    "S3AssetFetcher",
    "OllamaEmbeddingInferer",
    "encode_asset",
    "FetcherConfig",
    "InfererConfig",
    "S3Config",
    "ClientError",
    "AssetFetchError",
    "InferenceError",
]
