"""
Object storage: buckets and objects over path-style REST.
"""

from awsrest.s3.connection import S3Connection
from awsrest.protocol.results import (
    Bucket,
    CreateBucketResult,
    DeleteBucketResult,
    DeleteResult,
    GetResult,
    HeadResult,
    ListAllBucketsResult,
    ListBucketResult,
    ObjectEntry,
    ObjectInfo,
    Owner,
    PutResult,
)

__all__ = [
    "S3Connection",
    "Bucket",
    "CreateBucketResult",
    "DeleteBucketResult",
    "DeleteResult",
    "GetResult",
    "HeadResult",
    "ListAllBucketsResult",
    "ListBucketResult",
    "ObjectEntry",
    "ObjectInfo",
    "Owner",
    "PutResult",
]
