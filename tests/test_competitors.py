"""
Competitor density analysis and the competitor locations adapter.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from agents.competitors import (
    CompetitorLocationsAgent, OverpassClient,
    analyze_market_density, classify_density, competitor_market_score,
    format_address, haversine_meters,
)
from models.schemas import Coordinates, Provenance


NOMINATIM_HIT = [{"lat": "40.0", "lon": "-74.0", "display_name": "New York"}]


class TestGeometry:
    def test_one_degree_of_longitude_at_equator(self):
        assert haversine_meters(Coordinates(0, 0), Coordinates(0, 1)) == 111195

    def test_same_point_is_zero(self):
        p = Coordinates(40.7, -74.0)
        assert haversine_meters(p, p) == 0

    @pytest.mark.parametrize("a,b", [
        (Coordinates(40.7128, -74.0060), Coordinates(51.5074, -0.1278)),
        (Coordinates(-33.8688, 151.2093), Coordinates(35.6762, 139.6503)),
        (Coordinates(30.2672, -97.7431), Coordinates(30.2700, -97.7400)),
    ])
    def test_distance_is_symmetric(self, a, b):
        assert haversine_meters(a, b) == haversine_meters(b, a)
        assert haversine_meters(a, b) > 0

    def test_address_from_tags(self):
        tags = {"addr:housenumber": "12", "addr:street": "Main St", "addr:city": "Springfield"}
        assert format_address(tags) == "12, Main St, Springfield"

    def test_missing_address(self):
        assert format_address({}) == "Address not available"
        assert format_address({"name": "Cafe"}) == "Address not available"


class TestDensityScoring:
    @pytest.mark.parametrize("count,expected", [
        (0, "Low"), (3, "Low"), (4, "Medium"), (8, "Medium"), (9, "High"),
    ])
    def test_density_thresholds(self, count, expected):
        assert classify_density(count) == expected

    def test_empty_area_scores_max(self):
        # 50 + 30 (Low) + 20 (none) + 15 (far) clamps to 100
        assert competitor_market_score("Low", 0, 5000, 5000) == 100

    def test_medium_close_competition(self):
        # 50 + 10 (Medium) - 10 (avg < 30% of radius)
        assert competitor_market_score("Medium", 5, 1000, 5000) == 50

    def test_saturated_area(self):
        # 50 - 20 (High) - 15 (>8) + 15 (avg > 80% of radius)
        assert competitor_market_score("High", 10, 4500, 5000) == 30

    def test_no_competitors_uses_radius_as_average(self):
        analysis = analyze_market_density("cafe", "Springfield", 3000, [])
        assert analysis.competitor_count == 0
        assert analysis.average_distance == 3000
        assert "No direct competitors identified in immediate area" in analysis.opportunities


class TestOverpassQuery:
    def test_single_amenity_uses_equality(self):
        query = OverpassClient.build_query(["cafe"], Coordinates(40.0, -74.0), 1000)
        assert '["amenity"="cafe"]' in query
        assert "(around:1000,40.0,-74.0)" in query

    def test_many_amenities_use_regex(self):
        query = OverpassClient.build_query(["restaurant", "fast_food"], Coordinates(1.0, 2.0), 500)
        assert '["amenity"~"^(restaurant|fast_food)$"]' in query


class TestCompetitorLocationsAgent:
    def test_geocode_failure_gives_fallback(self, test_settings, http):
        result = CompetitorLocationsAgent(test_settings, http).get_competitor_analysis("coffee shop", "Nowhere")
        assert result.provenance == Provenance.SYNTHETIC
        assert result.data.competitor_count == 2
        assert result.data.market_density == "Medium"
        assert result.data.average_distance == 800
        assert result.data.market_score == 65

    def test_empty_geocode_result_gives_fallback(self, test_settings, http):
        http.add("GET", "nominatim", [])
        result = CompetitorLocationsAgent(test_settings, http).get_competitor_analysis("coffee shop", "Nowhere")
        assert result.provenance == Provenance.SYNTHETIC
        assert "geocoding failed" in result.reason

    def test_poi_failure_analyzes_placeholders(self, test_settings, http):
        http.add("GET", "nominatim", NOMINATIM_HIT)
        http.add("POST", "overpass", {"remark": "runtime error"})
        result = CompetitorLocationsAgent(test_settings, http).get_competitor_analysis("coffee shop", "New York")
        assert result.provenance == Provenance.SYNTHETIC
        names = [c.name for c in result.data.competitors]
        assert names == ["Local coffee shop", "Downtown coffee shop"]
        assert [c.distance for c in result.data.competitors] == [500, 800]
        assert result.data.market_density == "Low"

    def test_live_results_are_real(self, test_settings, http):
        http.add("GET", "nominatim", NOMINATIM_HIT)
        http.add("POST", "overpass", {"elements": [
            {"type": "node", "lat": 40.001, "lon": -74.0,
             "tags": {"name": "Bean There", "addr:street": "Main St"}},
            {"type": "way", "center": {"lat": 40.002, "lon": -74.0}, "tags": {}},
            {"type": "relation", "id": 3},
        ]})
        result = CompetitorLocationsAgent(test_settings, http).get_competitor_analysis(
            "coffee shop", "New York", radius_meters=1000
        )
        assert result.is_real
        analysis = result.data
        assert analysis.competitor_count == 2
        assert analysis.competitors[0].name == "Bean There"
        assert analysis.competitors[0].address == "Main St"
        assert analysis.competitors[0].distance == 111
        assert analysis.competitors[1].name == "coffee shop Location"
        assert analysis.competitors[1].address == "Address not available"
        assert analysis.radius == 1000

    def test_overpass_query_uses_category_amenities(self, test_settings, http):
        http.add("GET", "nominatim", NOMINATIM_HIT)
        http.add("POST", "overpass", {"elements": []})
        CompetitorLocationsAgent(test_settings, http).get_competitor_analysis("gym", "New York")
        method, url, kwargs = http.calls[-1]
        assert method == "POST"
        assert '"amenity"~"^(gym|fitness_centre)$"' in kwargs["data"]["data"]
