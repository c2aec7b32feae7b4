# =============================================================================
# CLIPKit Demo - Client Package
# =============================================================================
# This package contains the demo client: an HTTP client for the demo server
# and a command-line flow that loads both encoders, encodes images and text,
# and prints the ranked distances.
# =============================================================================
