import pytest

from service.analytics.threat import WEIGHTS, ThreatInputs, assess_threat, threat_level


@pytest.mark.parametrize("score,level", [
    (0, "LOW"),
    (19, "LOW"),
    (20, "MODERATE"),
    (39, "MODERATE"),
    (40, "ELEVATED"),
    (60, "HIGH"),
    (79, "HIGH"),
    (82, "CRITICAL"),
    (100, "CRITICAL"),
])
def test_threat_level_bands(score, level):
    assert threat_level(score)[0] == level


def test_quiet_airspace_is_low():
    assessment = assess_threat(ThreatInputs())
    assert assessment.overall_score == 0
    assert assessment.level == "LOW"
    assert assessment.top_concerns == []
    assert assessment.recommendations == ["Airspace conditions normal - continue standard operations"]


def test_overall_score_is_weighted_sum():
    inputs = ThreatInputs(military_flights=20, hostile_flights=4, pattern_clusters=5,
                          conflict_flights=2, conflict_from_east=1, proximity_high_risk=4)
    result = assess_threat(inputs).to_dict()
    components = result["components"]
    expected = round(sum(WEIGHTS[name] * components[name]["score"] for name in WEIGHTS))
    assert result["overall_score"] == expected
    assert components["military_activity"]["score"] == 84
    assert components["unusual_patterns"]["score"] == 50
    assert components["conflict_zone_activity"]["score"] == 55
    assert result["level"] == result["threat_level"] == threat_level(expected)[0]
    assert len(result["top_concerns"]) <= 4
    assert [c["score"] for c in result["top_concerns"]] == sorted(
        (c["score"] for c in result["top_concerns"]), reverse=True)
    assert 1 <= len(result["recommendations"]) <= 3
    assert result["alerts"][0]["severity"] == "critical"


def test_components_are_capped():
    inputs = ThreatInputs(military_flights=1000, hostile_flights=1000, pattern_clusters=1000,
                          conflict_flights=1000, conflict_from_east=1000)
    result = assess_threat(inputs)
    for component in result.components.values():
        assert 0 <= component["score"] <= 100
    assert result.overall_score <= 100
