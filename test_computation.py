"""Test the feasibility engine: reference scenarios and accounting identities."""

import json
import math

import pytest

from feasibility_engine import build_cash_flow, compute_feasibility, construction_time_months
from project_model import (
    DetailedCosts,
    FlatCosts,
    ProjectInput,
    ProjectType,
    QuickFeasibility,
    QuickStudy,
    SegmentCost,
    SegmentedCosts,
    Unit,
    UnitMix,
    Zoning,
    default_project,
    to_document,
)


def _quick_project(**study) -> ProjectInput:
    return ProjectInput(revenue=QuickStudy(study=QuickFeasibility(**study)))


SCENARIO_A = dict(
    land_area=1000,
    construction_potential=2.5,
    efficiency=70,
    sale_price_per_area=12000,
    construction_cost_per_area=5500,
    asking_price=2_000_000,
    soft_cost_rate=10,
)


# ---------------------------------------------------------------------------
# Reference scenarios
# ---------------------------------------------------------------------------

def test_quick_study_scenario():
    """Scenario A: flat costs, quick study, no explicit units."""
    result = compute_feasibility(_quick_project(**SCENARIO_A))

    assert result["built_area"] == pytest.approx(2500)
    assert result["private_area"] == pytest.approx(1750)
    assert result["vgv"] == pytest.approx(21_000_000)
    assert result["construction_cost"] == pytest.approx(13_750_000)
    assert result["quick_study"]["hard_cost"] == pytest.approx(13_750_000)


def test_quick_study_block():
    qs = compute_feasibility(_quick_project(**SCENARIO_A))["quick_study"]

    assert qs["soft_cost"] == pytest.approx(2_100_000)
    assert qs["land_cost"] == pytest.approx(2_000_000)
    assert qs["profit"] == pytest.approx(3_150_000)
    assert qs["margin"] == pytest.approx(15.0)
    assert qs["required_margin"] == 20
    assert qs["meets_required_margin"] is False
    assert qs["max_land_price"] == pytest.approx(950_000)


def test_single_unit_scenario():
    """Scenario B: one unit type drives VGV and private area."""
    project = ProjectInput(revenue=UnitMix(units=[Unit(quantity=10, area=65, price_per_area=7500)]))
    result = compute_feasibility(project)

    assert result["vgv"] == pytest.approx(4_875_000)
    assert result["private_area"] == pytest.approx(650)
    assert result["revenue_source"] == "units"
    assert result["quick_study"] is None


def test_all_zero_inputs():
    """Scenario C: every denominator is zero and nothing raises."""
    result = compute_feasibility(ProjectInput())

    for key in ("total_cost", "vgv", "profit", "roi", "margin"):
        assert result[key] == 0
    assert all(item["percentage"] == 0 for item in result["breakdown"])
    kpis = result["dashboard"]["kpis"]
    assert kpis["utilization"] == 0
    assert kpis["vgv_per_private_area"] == 0
    assert kpis["cost_per_built_area"] == 0
    assert result["cash_flow"][-1]["cumulative"] == 0


def test_house_construction_time():
    """Scenario D: ceil(5 + 160/40) = 9 months."""
    project = ProjectInput(project_type=ProjectType.HOUSE, total_built_area=160)
    result = compute_feasibility(project)

    assert result["construction_time_months"] == 9
    assert len(result["cash_flow"]) == 9


def test_construction_time_floor():
    project = ProjectInput(project_type=ProjectType.HOUSE)

    assert construction_time_months(project, -200) == 3
    assert construction_time_months(project, 0) == 5


def test_building_construction_time_from_floors():
    """Scenario E: ceil(4 + 1.5 + 4 + 2 + 0) = 12 months."""
    project = ProjectInput(
        project_type=ProjectType.BUILDING,
        total_built_area=5000,
        zoning=Zoning(standard_floors=4, garage_floors=1, leisure_floors=1, penthouse_floors=0),
    )
    assert compute_feasibility(project)["construction_time_months"] == 12


def test_building_construction_time_without_floors():
    project = ProjectInput(project_type=ProjectType.BUILDING, total_built_area=1200)
    assert compute_feasibility(project)["construction_time_months"] == math.ceil(12 + 1200 / 60)


# ---------------------------------------------------------------------------
# Identities
# ---------------------------------------------------------------------------

def test_total_cost_identity():
    result = compute_feasibility(default_project())
    land = result["land_costs"]["total"]
    sales = result["sales_deductions"]

    assert result["total_cost"] == (
        result["total_construction"] + land + result["total_expenses"]
        + sales["taxes"] + sales["commission"]
    )


def test_default_project_figures():
    result = compute_feasibility(default_project())

    # the quick block's R$ 5 500/m² replaces the CUB
    assert result["construction_cost"] == pytest.approx(1200 * 5500)
    assert result["total_construction"] == pytest.approx(1200 * 5500 + 350_000)
    assert result["land_costs"]["total"] == pytest.approx(1_500_000 * 1.10)
    assert result["total_expenses"] == pytest.approx(250_000)
    assert result["sales_deductions"]["taxes"] == pytest.approx(4_875_000 * 0.0409)
    assert result["sales_deductions"]["commission"] == pytest.approx(4_875_000 * 0.04)
    assert result["permitted_area"] == pytest.approx(600 * 2.5)
    assert result["profit"] == pytest.approx(result["vgv"] - result["total_cost"])


def test_margin_zero_when_no_revenue():
    project = ProjectInput(land_value=100_000)
    result = compute_feasibility(project)

    assert result["vgv"] == 0
    assert result["margin"] == 0
    assert result["roi"] == pytest.approx(-100)


def test_cash_flow_distributes_every_cost_once():
    project = default_project()
    result = compute_feasibility(project)

    expected = (
        result["total_construction"] + result["land_costs"]["total"]
        + project.documentation_cost + project.other_costs + project.marketing_cost
    )
    assert sum(m["amount"] for m in result["cash_flow"]) == pytest.approx(expected)
    assert result["cash_flow"][-1]["cumulative"] == pytest.approx(expected)
    assert [m["month"] for m in result["cash_flow"]] == list(range(1, 13))


@pytest.mark.parametrize("months", [1, 2, 3, 4, 5, 12, 37])
def test_cash_flow_short_schedules(months):
    schedule = build_cash_flow(months, 1000.0, upfront=200.0, marketing=50.0)

    assert len(schedule) == months
    assert schedule.sum() == pytest.approx(1250.0)


def test_cash_flow_phases():
    schedule = build_cash_flow(10, 1000.0, upfront=0.0, marketing=0.0)

    # 2 / 6 / 2 months
    assert schedule[:2].sum() == pytest.approx(200)
    assert schedule[2:8].sum() == pytest.approx(600)
    assert schedule[8:].sum() == pytest.approx(200)


def test_breakdown_sums_to_100():
    result = compute_feasibility(default_project())

    assert [b["category"] for b in result["breakdown"]] == ["Construction", "Land", "Taxes", "Expenses"]
    assert sum(b["percentage"] for b in result["breakdown"]) == pytest.approx(100)
    assert sum(b["value"] for b in result["breakdown"]) == pytest.approx(result["total_cost"])


def test_cost_mode_isolation():
    """Changing the cost mode leaves land, expenses and taxes untouched."""
    base = default_project()
    variants = [
        base.construction,
        DetailedCosts(structure=800, masonry=400, electrical=200, plumbing=200,
                      finishing=500, roofing=100, foundation_cost=200_000),
        SegmentedCosts(
            foundation_per_area=150,
            garage=SegmentCost(area=300, price_per_area=1800),
            standard=SegmentCost(area=800, price_per_area=2600),
        ),
    ]
    results = [compute_feasibility(base.model_copy(update={"construction": c})) for c in variants]

    for key in ("land_costs", "sales_deductions", "total_expenses", "vgv"):
        assert results[0][key] == results[1][key] == results[2][key]
    assert [r["cost_mode"] for r in results] == ["flat", "detailed", "segmented"]
    assert results[1]["construction_cost"] == pytest.approx(1200 * 2200)
    assert results[2]["construction_cost"] == pytest.approx(300 * 1800 + 800 * 2600)
    assert results[2]["foundation_cost"] == pytest.approx(1100 * 150)
    assert results[2]["built_area"] == pytest.approx(1100)


def test_flat_mode_uses_study_cost_with_any_revenue_source():
    study = QuickFeasibility(construction_cost_per_area=3000)
    unit_mix = UnitMix(units=[Unit(quantity=1, area=80, price_per_area=10)])
    quick = ProjectInput(
        total_built_area=100,
        construction=FlatCosts(cost_per_area=2000),
        revenue=QuickStudy(study=study),
    )
    units_with_study = ProjectInput(
        total_built_area=100,
        construction=FlatCosts(cost_per_area=2000),
        revenue=unit_mix,
        quick_feasibility=study,
    )
    units_only = ProjectInput(
        total_built_area=100,
        construction=FlatCosts(cost_per_area=2000),
        revenue=unit_mix,
    )

    assert compute_feasibility(quick)["construction_cost"] == pytest.approx(300_000)
    assert compute_feasibility(units_with_study)["construction_cost"] == pytest.approx(300_000)
    assert compute_feasibility(units_only)["construction_cost"] == pytest.approx(200_000)


def test_legacy_starter_document_uses_study_cost():
    """Units plus a quick block: the block's cost per m² replaces the CUB."""
    legacy = {
        "area": 1200,
        "landArea": 600,
        "cubValue": 2480.20,
        "units": [{"id": "1", "quantity": 10, "area": 65, "pricePerSqm": 7500}],
        "quickFeasibility": {"landArea": 1000, "constructionPotential": 2.5,
                             "efficiency": 70, "constructionCostPerSqm": 5500},
    }
    result = compute_feasibility(ProjectInput.model_validate(legacy))

    assert result["construction_cost"] == pytest.approx(6_600_000)
    assert result["vgv"] == pytest.approx(4_875_000)
    assert result["quick_study"]["hard_cost"] == pytest.approx(2500 * 5500)
    assert result["land_area"] == 600


def test_units_with_study_derive_built_area_from_land():
    project = ProjectInput(
        construction=FlatCosts(cost_per_area=2000),
        revenue=UnitMix(units=[Unit(quantity=20, area=50, price_per_area=8000)]),
        quick_feasibility=QuickFeasibility(land_area=1000, construction_potential=2.5),
    )
    result = compute_feasibility(project)

    assert result["built_area"] == pytest.approx(2500)
    assert result["construction_cost"] == pytest.approx(2500 * 2000)
    assert result["dashboard"]["kpis"]["efficiency"] == pytest.approx(1000 / 2500 * 100)


def test_units_without_study_keep_zero_built_area():
    project = ProjectInput(
        land_area=1000,
        zoning=Zoning(utilization_coefficient=2.5),
        construction=FlatCosts(cost_per_area=2000),
        revenue=UnitMix(units=[Unit(quantity=1, area=50, price_per_area=8000)]),
    )
    result = compute_feasibility(project)

    assert result["built_area"] == 0
    assert result["construction_cost"] == 0
    assert result["dashboard"]["kpis"]["cost_per_built_area"] == 0


def test_negative_inputs_stay_finite():
    project = ProjectInput(
        project_type=ProjectType.HOUSE,
        total_built_area=-300,
        land_area=-50,
        land_value=-200_000,
        marketing_cost=-40_000,
        documentation_cost=10_000,
        construction=FlatCosts(cost_per_area=2500, foundation_cost=-5_000),
        revenue=UnitMix(units=[Unit(quantity=-4, area=70, price_per_area=6000)]),
    )
    result = compute_feasibility(project)

    def numbers(value):
        if isinstance(value, dict):
            for v in value.values():
                yield from numbers(v)
        elif isinstance(value, list):
            for v in value:
                yield from numbers(v)
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            yield value

    assert all(math.isfinite(n) for n in numbers(result))
    land = result["land_costs"]["total"]
    sales = result["sales_deductions"]
    assert result["total_cost"] == (
        result["total_construction"] + land + result["total_expenses"]
        + sales["taxes"] + sales["commission"]
    )
    assert result["construction_time_months"] >= 3
    assert sum(m["amount"] for m in result["cash_flow"]) == pytest.approx(
        result["total_construction"] + land + 10_000 - 40_000
    )


# ---------------------------------------------------------------------------
# Dashboard, sensitivity, determinism
# ---------------------------------------------------------------------------

def test_dashboard_sections():
    project = default_project()
    result = compute_feasibility(project)
    dash = result["dashboard"]

    assert dash["synthetic"]["result"] == result["profit"]
    exp = dash["analytical"]["expenses"]
    assert exp["marketing_launch"] == pytest.approx(72_000)
    assert exp["marketing_maintenance"] == pytest.approx(48_000)
    assert exp["admin"] == pytest.approx(130_000)
    cons = dash["analytical"]["construction"]
    assert cons["direct"] + cons["indirect"] == pytest.approx(cons["total"])
    assert cons["indirect"] == pytest.approx(result["total_construction"] * 0.10)

    kpis = dash["kpis"]
    assert kpis["efficiency"] == pytest.approx(650 / 1200 * 100)
    assert kpis["cash_exposure"] == pytest.approx(
        result["land_costs"]["total"] + result["total_construction"] * 0.2
    )
    assert kpis["max_land_value"] == pytest.approx(
        result["vgv"] * 0.85 - result["total_construction"] - result["total_expenses"]
        - result["sales_deductions"]["taxes"] - result["sales_deductions"]["commission"]
    )


def test_sensitivity_grid():
    result = compute_feasibility(default_project())
    sens = result["sensitivity"]

    assert len(sens["margin_matrix"]) == 5
    assert all(len(row) == 5 for row in sens["margin_matrix"])
    assert sens["margin_matrix"][2][2] == pytest.approx(result["margin"])
    # higher price, lower cost is the best corner
    assert sens["margin_matrix"][4][0] > sens["margin_matrix"][0][4]
    assert sens["vgv_range"][2] == pytest.approx(result["vgv"])


def test_sensitivity_zero_vgv():
    sens = compute_feasibility(ProjectInput(land_value=10))["sensitivity"]
    assert all(cell == 0 for row in sens["margin_matrix"] for cell in row)


def test_round_trip_is_deterministic():
    project = default_project()
    first = compute_feasibility(project)

    document = json.loads(json.dumps(to_document(project)))
    second = compute_feasibility(ProjectInput.model_validate(document))

    assert first == second


def test_result_is_json_native():
    result = compute_feasibility(_quick_project(**SCENARIO_A))
    assert json.loads(json.dumps(result)) == result
