import os
import sys
from decimal import Decimal

# Ensure backend package (marketplace) is on sys.path for imports during tests
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from marketplace.utils.budget import parse_budget_amount
from marketplace.utils.gamification import compute_level_progress
from marketplace.utils.geo import haversine_km, within_radius
from marketplace.utils.matching import matches_specialty


# --- budget ---

def test_budget_takes_first_number_of_range():
    assert parse_budget_amount("R$150-250", 100.0) == Decimal("150.00")


def test_budget_with_thousands_and_decimal_comma():
    assert parse_budget_amount("R$ 1.500,00", 100.0) == Decimal("1500.00")


def test_budget_with_decimal_point():
    assert parse_budget_amount("about 99.90 total", 100.0) == Decimal("99.90")


def test_budget_without_number_falls_back():
    assert parse_budget_amount("to be negotiated", 100.0) == Decimal("100.00")
    assert parse_budget_amount(None, 100.0) == Decimal("100.00")
    assert parse_budget_amount("", 100.0) == Decimal("100.00")


# --- gamification ---

def test_level_bronze_at_zero():
    progress = compute_level_progress(0)
    assert progress["current_level"] == "Bronze"
    assert progress["next_level"] == "Silver"
    assert progress["progress"] == 0


def test_level_thresholds():
    assert compute_level_progress(999)["current_level"] == "Bronze"
    assert compute_level_progress(1000)["current_level"] == "Silver"
    assert compute_level_progress(2500)["current_level"] == "Gold"
    assert compute_level_progress(5000)["current_level"] == "Diamond"


def test_level_progress_is_floored_percentage():
    progress = compute_level_progress(500)
    assert progress["next_level_xp"] == 1000
    assert progress["progress"] == 50

    assert compute_level_progress(1333)["progress"] == 53


def test_level_progress_capped_at_100():
    progress = compute_level_progress(20000)
    assert progress["current_level"] == "Diamond"
    assert progress["next_level"] == "Legend"
    assert progress["progress"] == 100


# --- geo ---

def test_haversine_zero_distance():
    assert haversine_km(-23.55, -46.63, -23.55, -46.63) == 0


def test_haversine_known_distance():
    # Sao Paulo -> Rio de Janeiro is roughly 360 km
    distance = haversine_km(-23.5505, -46.6333, -22.9068, -43.1729)
    assert 350 < distance < 370


def test_within_radius_excludes_missing_coordinates():
    assert within_radius(0, 0, None, None, 50) is False


def test_within_radius_is_inclusive():
    distance = haversine_km(0, 0, 0, 0.1)
    assert within_radius(0, 0, 0, 0.1, distance)
    assert not within_radius(0, 0, 0, 0.1, distance - 0.001)


# --- specialty matching ---

def test_specialty_exact_and_case_insensitive():
    assert matches_specialty("plumber", ["Plumber"])


def test_specialty_containment():
    assert matches_specialty("Residential Plumber", ["Plumber"])


def test_specialty_fuzzy():
    # one typo: similarity 1 - 1/8 >= 0.8
    assert matches_specialty("Plumbers", ["Plumber"])
    assert matches_specialty("Electrican", ["Electrician"])


def test_specialty_no_match():
    assert not matches_specialty("Painter", ["Plumber", "Electrician"])
    assert not matches_specialty(None, ["Plumber"])
    assert not matches_specialty("Plumber", [])
