"""Fetch requests and result materialization."""

from .materialize import Composite, decode_record
from .request import FetchRequest, Include, fetch

__all__ = ["Composite", "FetchRequest", "Include", "decode_record", "fetch"]
