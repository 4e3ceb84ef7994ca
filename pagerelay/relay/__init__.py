"""
Relay pipeline: target validation, classification, passthrough, render/rewrite
and artifact capture.
"""

from pagerelay.relay.artifacts import capture_pdf, capture_response_headers, capture_screenshot
from pagerelay.relay.classifier import ContentClassifier, is_html
from pagerelay.relay.passthrough import PassthroughFetcher, PassthroughResponse
from pagerelay.relay.render import capture_document, render_and_rewrite
from pagerelay.relay.rewrite import resolve_and_rewrite, resolve_reference, rewrite_document
from pagerelay.relay.target import RelayMode, TargetRequest, parse_target
from pagerelay.relay.upstream import create_upstream_client
from pagerelay.relay.viewport import Viewport, resolve_viewport

__all__ = [
    "ContentClassifier",
    "PassthroughFetcher",
    "PassthroughResponse",
    "RelayMode",
    "TargetRequest",
    "Viewport",
    "capture_document",
    "capture_pdf",
    "capture_response_headers",
    "capture_screenshot",
    "create_upstream_client",
    "is_html",
    "parse_target",
    "render_and_rewrite",
    "resolve_and_rewrite",
    "resolve_reference",
    "resolve_viewport",
    "rewrite_document",
]
