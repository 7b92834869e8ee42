from __future__ import annotations

import unittest

from staffcheck.models import WorkLocation
from staffcheck.services.location import distance_m, evaluate_geofence


def _location(location_id: int, lat: float, lon: float, *, radius: int = 100, active: bool = True) -> WorkLocation:
    return WorkLocation(
        id=location_id,
        name=f"Site {location_id}",
        latitude=lat,
        longitude=lon,
        radius_meters=radius,
        is_active=active,
    )


class LocationServiceTests(unittest.TestCase):
    def test_distance_m_zero_for_same_point(self) -> None:
        value = distance_m(41.0, 29.0, 41.0, 29.0)
        self.assertAlmostEqual(value, 0.0, places=6)

    def test_distance_m_known_reference(self) -> None:
        # roughly one degree of longitude on the equator
        value = distance_m(0.0, 0.0, 0.0, 1.0)
        self.assertAlmostEqual(value, 111_195, delta=300)

    def test_distance_m_is_symmetric(self) -> None:
        v1 = distance_m(41.0082, 28.9784, 39.9334, 32.8597)
        v2 = distance_m(39.9334, 32.8597, 41.0082, 28.9784)
        self.assertAlmostEqual(v1, v2, places=6)

    def test_antipodal_points_do_not_raise(self) -> None:
        value = distance_m(0.0, 0.0, 0.0, 180.0)
        self.assertAlmostEqual(value, 20_015_087, delta=1000)

    def test_point_inside_radius_is_valid(self) -> None:
        result = evaluate_geofence([_location(1, 41.0, 29.0)], 41.0003, 29.0)
        self.assertTrue(result.is_valid)
        self.assertEqual(result.nearest_location.id, 1)
        self.assertLess(result.distance_m, 100)

    def test_point_outside_every_radius_reports_nearest(self) -> None:
        locations = [_location(1, 41.0, 29.0), _location(2, 41.01, 29.0)]
        result = evaluate_geofence(locations, 41.02, 29.0)
        self.assertFalse(result.is_valid)
        self.assertEqual(result.nearest_location.id, 2)
        self.assertAlmostEqual(result.distance_m, 1112, delta=5)

    def test_valid_when_inside_a_non_nearest_large_radius(self) -> None:
        locations = [_location(1, 41.0, 29.0, radius=50), _location(2, 41.005, 29.0, radius=2000)]
        result = evaluate_geofence(locations, 41.0006, 29.0)
        self.assertTrue(result.is_valid)
        self.assertEqual(result.nearest_location.id, 1)

    def test_inactive_locations_are_ignored(self) -> None:
        result = evaluate_geofence([_location(1, 41.0, 29.0, active=False)], 41.0, 29.0)
        self.assertFalse(result.is_valid)
        self.assertIsNone(result.nearest_location)
        self.assertIsNone(result.distance_m)

    def test_distance_is_rounded_to_two_decimals(self) -> None:
        result = evaluate_geofence([_location(1, 41.0, 29.0)], 41.00123, 29.00456)
        self.assertEqual(result.distance_m, round(result.distance_m, 2))


if __name__ == "__main__":
    unittest.main()
