from poissonfields.acquisition.classifier import classify_bytes, decode_asset, is_suitable
from poissonfields.acquisition.fetcher import Fetcher, HttpxFetcher
from poissonfields.acquisition.pool import build_candidate_pool

__all__ = [
    "Fetcher",
    "HttpxFetcher",
    "build_candidate_pool",
    "classify_bytes",
    "decode_asset",
    "is_suitable",
]
