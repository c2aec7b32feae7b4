# =============================================================================
# CLIPKit Demo - Server Package
# =============================================================================
# This package contains the server-side components responsible for loading
# the CLIP encoder bundles, encoding images and text into a demo session,
# and ranking text embeddings against image embeddings over HTTP.
# =============================================================================
