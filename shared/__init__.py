# =============================================================================
# CLIPKit Demo - Shared Package
# =============================================================================
# Code used by both the server and the demo client: the embedding data model,
# the similarity ranker, the error taxonomy, image helpers and API schemas.
# =============================================================================
