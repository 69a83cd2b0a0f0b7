"""Delivery of matched messages to external endpoints for stream rules."""

from mailrules.delivery.content import Delivery, build_delivery, find_html_part
from mailrules.delivery.sink import BaseSink, HTTPSink

__all__ = [
    "BaseSink",
    "Delivery",
    "HTTPSink",
    "build_delivery",
    "find_html_part",
]
