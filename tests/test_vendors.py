"""Tests for vendor aggregation."""

from dealdesk.orchestrator import aggregate_vendor


def part(name=None, off_site=True, vendor=...):
    if vendor is ...:
        vendor = {"id": f"id-{name}", "name": name} if name else None
    return {"is_off_site": off_site, "vendor": vendor}


class TestAggregateVendor:
    """Tests for aggregate_vendor."""

    def test_single_vendor(self):
        """One distinct name is returned as-is."""
        assert aggregate_vendor([part("Acme Glass"), part("Acme Glass")]) == "Acme Glass"

    def test_mixed(self):
        """Several distinct names give Mixed."""
        assert aggregate_vendor([part("Acme Glass"), part("Tint Pros")]) == "Mixed"

    def test_exact_match_dedupe(self):
        """Names differing only by whitespace or case are distinct."""
        assert aggregate_vendor([part("Acme"), part("Acme ")]) == "Mixed"
        assert aggregate_vendor([part("Acme"), part("acme")]) == "Mixed"

    def test_on_site_items_ignored(self):
        """Only off-site items count."""
        parts = [part("Acme Glass"), part("In House", off_site=False)]
        assert aggregate_vendor(parts) == "Acme Glass"

    def test_job_level_fallback(self):
        """Without off-site vendors the job-level name is used."""
        assert aggregate_vendor([part("Shop", off_site=False)], "Job Vendor") == "Job Vendor"

    def test_unassigned(self):
        """No names at all gives Unassigned."""
        assert aggregate_vendor([]) == "Unassigned"
        assert aggregate_vendor(None) == "Unassigned"

    def test_degraded_vendor_contributes_nothing(self):
        """Parts whose vendor relationship is unavailable are skipped."""
        parts = [part(vendor=None), part(vendor={"id": "v1"}), part("Acme Glass"), None]
        assert aggregate_vendor(parts) == "Acme Glass"
        assert aggregate_vendor([part(vendor=None)], None) == "Unassigned"
