# =============================================================================
# RepairIQ - Shared Package
# =============================================================================
# Wire contracts used by both the server and the scanner client.
# =============================================================================
