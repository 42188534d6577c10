# =============================================================================
# RepairIQ - Scanner Client Package
# =============================================================================
# This package contains the client-side components responsible for frame
# capture (local camera, relayed phone, uploaded file), classification
# requests, explanations, and sequencing them into scans.
# =============================================================================
