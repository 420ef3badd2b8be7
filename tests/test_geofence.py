import pytest

from patrolhub.services.geofence import haversine_distance, validate


SITE = (17.9757, 102.6331)


def test_haversine_one_degree_of_longitude_at_equator():
    assert haversine_distance(0, 0, 0, 1) == pytest.approx(111195, rel=1e-3)


def test_missing_locations_are_skipped():
    for device, site in [(None, (1, 1)), ((1, 1), None), ((None, None), (1, 1))]:
        result = validate(device, site)
        assert result.valid
        assert result.skipped


def test_within_radius():
    result = validate((17.9760, 102.6333), SITE)
    assert result.valid
    assert not result.skipped
    assert result.distance_m < 150
    assert result.message is None


def test_out_of_range_allowed_when_not_enforced():
    result = validate((17.99, 102.65), SITE, enforced=False)
    assert result.valid
    assert result.distance_m > 150
    assert "away from the site" in result.message


def test_out_of_range_rejected_when_enforced():
    result = validate((17.99, 102.65), SITE, threshold_m=150, enforced=True)
    assert not result.valid


def test_enforcement_flag_read_from_settings(monkeypatch):
    from patrolhub.config import settings

    monkeypatch.setattr(settings, "geofence_enforced", True)
    assert not validate((17.99, 102.65), SITE).valid
