"""
Transfer Module - File Upload/Download

Handles raw TLS data channels and the chunked copy between them and
local files.
"""

from .pump import Transfer, CHUNK_SIZE, INCOMPLETE_TRANSFER
from .streams import StreamSource, StreamSink, open_file_source, open_file_sink
from .channels import (
    StreamEndpoint, InputEndpoint, OutputEndpoint,
    download_channel, upload_channel, create_transfer,
)

__all__ = [
    'Transfer',
    'CHUNK_SIZE',
    'INCOMPLETE_TRANSFER',
    'StreamSource',
    'StreamSink',
    'open_file_source',
    'open_file_sink',
    'StreamEndpoint',
    'InputEndpoint',
    'OutputEndpoint',
    'download_channel',
    'upload_channel',
    'create_transfer',
]
