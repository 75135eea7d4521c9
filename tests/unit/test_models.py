"""Unit tests for data models."""

from datetime import datetime

from leadcrawler.models import (
    BoundingBox,
    Coordinates,
    CrawlPlan,
    CrawlResult,
    ExtentTier,
    GridCell,
    PlanMode,
    ScrapedListing,
    ScrapeOptions,
    SearchTarget,
    TargetKind,
)


class TestScrapedListing:
    """Tests for listing serialization."""

    def test_dict_round_trip(self):
        """Test coordinates and timestamps survive serialization."""
        listing = ScrapedListing(
            name="Cafe Tortoni",
            place_id="0x1:0x2",
            phone="011 4342-4328",
            rating=4.6,
            review_count=1200,
            coordinates=Coordinates(-34.6087, -58.3788),
            scraped_at=datetime(2024, 5, 1, 12, 30),
        )

        data = listing.to_dict()
        assert data["coordinates"] == {"lat": -34.6087, "lng": -58.3788}
        assert data["scraped_at"] == "2024-05-01T12:30:00"

        restored = ScrapedListing.from_dict(data)
        assert restored == listing

    def test_from_dict_ignores_unknown_keys(self):
        """Test cached data from other versions still loads."""
        restored = ScrapedListing.from_dict({"name": "X", "place_id": "p", "legacy_field": 1})

        assert restored.name == "X"
        assert restored.coordinates is None


class TestOptionsAndPlans:
    """Tests for options, targets and results."""

    def test_cache_key_is_case_insensitive(self):
        """Test the same request in different case shares a cache entry."""
        a = ScrapeOptions(keyword="Dentista", location="Palermo")
        b = ScrapeOptions(keyword="dentista", location="PALERMO")

        assert a.cache_key == b.cache_key == "scrape:dentista:palermo"

    def test_base_query(self):
        """Test the free-text query joins keyword and location."""
        assert ScrapeOptions(keyword="dentista", location="Palermo").base_query == "dentista en Palermo"

    def test_query_for_target(self):
        """Test targets render their template."""
        target = SearchTarget(label="Pilar", kind=TargetKind.SETTLEMENT, place="Pilar")

        assert target.query_for("dentista") == "dentista en Pilar"

    def test_plan_cells(self):
        """Test only cell targets contribute cells."""
        cell = GridCell(center=Coordinates(0, 0), zoom=14, label="A1")
        plan = CrawlPlan(
            location="X",
            tier=ExtentTier.MEDIUM,
            radius_km=5,
            grid_size=1,
            mode=PlanMode.GRID,
            targets=[
                SearchTarget(label="A1", kind=TargetKind.CELL, place="X", cell=cell),
                SearchTarget(label="X", kind=TargetKind.VARIANT, place="X"),
            ],
        )

        assert plan.cells == [cell]

    def test_provincial_tiers(self):
        """Test which tiers sweep settlement by settlement."""
        assert ExtentTier.PROVINCE.is_provincial
        assert ExtentTier.REGION.is_provincial
        assert not ExtentTier.LARGE.is_provincial

    def test_bbox_spans(self):
        """Test spans are measured in degrees."""
        box = BoundingBox(north=1, south=-1, east=1, west=-1)

        assert box.lat_span == 2
        assert box.lng_span == 2

    def test_partial_result(self):
        """Test aborted crawls are partial."""
        assert not CrawlResult().is_partial
        assert CrawlResult(aborted="circuit open").is_partial
