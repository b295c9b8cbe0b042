import os

import boto3

from urllib.parse import urlparse
from collections import namedtuple


"""
This module implements put operations for s3:// or file:// URIs.
Broadly, these functions take a data_uri, where a data_uri is always a
URI-formatted absolute path to a storage location, and kwargs, which are always
passed along to the underlying boto3 call and can be used for AWS credentials
"""


DataStorage = namedtuple(
    "DataStorage", "uri, store, bucket, path"
)

def parse_data_uri(data_uri: str):
    data_loc = urlparse(data_uri)
    return DataStorage(
        data_uri, data_loc.scheme, data_loc.netloc, data_loc.path)


def join_uri(data_uri: str, *parts) -> str:
    return "/".join([data_uri.rstrip('/')] + [str(p).strip('/') for p in parts])


def put_page_content(content: str, data_uri: str, **kwargs) -> str:
    """
    Writes content to a file located at data_uri and returns data_uri.
    Creates any subdirectories required to successfully write to data_uri.
    """
    data = parse_data_uri(data_uri)

    if data.store == 's3':
        return put_s3_content(data, content, **kwargs)
    elif data.store == 'file':
        return put_file_content(data, content)
    else:
        raise Exception(f"Unknown data store: {data.store}")


def put_s3_content(data: DataStorage, content, **kwargs) -> str:
    """
    Write content to an object named data.path
    """
    s3 = boto3.client('s3', **kwargs)
    s3.put_object(
        ACL='bucket-owner-full-control',
        Bucket=data.bucket,
        Key=data.path.lstrip('/'),
        Body=content
    )
    return data.uri


def put_file_content(data: DataStorage, content) -> str:
    """
    Write content to a file at data.path
    """
    file_path = os.sep.join(data.path.split('/'))
    directory_path = os.path.dirname(file_path)
    if not os.path.exists(directory_path):
        os.makedirs(directory_path, exist_ok=True)

    with open(file_path, 'w', encoding='utf-8') as f:
        f.write(content)
    return data.uri
