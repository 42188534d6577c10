# =============================================================================
# RepairIQ - Server Package
# =============================================================================
# This package contains the server-side components: the hardware component
# classifier behind POST /predict, the phone camera relay, and the deep links
# phones use to join it.
# =============================================================================
