"""Core feasibility engine for real estate development scenarios.

Takes a ProjectInput (from project_model.py) and returns a complete
feasibility result: cost totals, VGV, profit, ROI, margin, a monthly
cash-flow schedule, cost breakdown and the dashboard (synthetic P&L,
analytical P&L and KPIs).

Pure and deterministic: no I/O, no state. Every zero denominator resolves
to 0 so the engine cannot raise on numeric edge cases.

Usage:
    from feasibility_engine import compute_feasibility
    result = compute_feasibility(project)
"""

from __future__ import annotations

import json
import math
from typing import Any

import numpy as np

from project_model import (
    DetailedCosts,
    FlatCosts,
    ProjectInput,
    ProjectType,
    QuickStudy,
    SegmentedCosts,
    UnitMix,
)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MIN_CONSTRUCTION_MONTHS = 3

# House: base + built area / rate
HOUSE_BASE_MONTHS = 5
HOUSE_AREA_PER_MONTH = 40

# Building without floor data
BUILDING_BASE_MONTHS = 12
BUILDING_AREA_PER_MONTH = 60

# Building with floor data: base + months per floor, by category
FLOOR_BASE_MONTHS = 4
MONTHS_PER_FLOOR = {
    "garage": 1.5,
    "standard": 1.0,
    "leisure": 2.0,
    "penthouse": 1.5,
}

# Cash-flow phases (share of months, share of construction cost)
PHASE_MONTHS = (0.2, 0.6)
PHASE_COST = (0.20, 0.60, 0.20)

# Share of construction cost counted as early cash exposure
EXPOSURE_CONSTRUCTION_SHARE = 0.2

# VGV discount applied to the maximum land value. Kept literally; pending
# product-owner confirmation.
MAX_LAND_VGV_FACTOR = 0.85

SENSITIVITY_STEPS = np.linspace(0.8, 1.2, 5)


def _ratio(num: float, den: float) -> float:
    return num / den if den != 0 else 0.0


def _pct(value: float, rate_pct: float) -> float:
    return value * rate_pct / 100


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------

def _construction(project: ProjectInput) -> dict[str, float]:
    """Resolve construction cost and built area for the active cost mode."""
    costs = project.construction

    if isinstance(costs, SegmentedCosts):
        segments = costs.segments()
        built_area = sum(s.area for s in segments)
        construction_cost = sum(s.area * s.price_per_area for s in segments)
        foundation_cost = built_area * costs.foundation_per_area
        unit_cost = _ratio(construction_cost, built_area)

    elif isinstance(costs, DetailedCosts):
        built_area = project.total_built_area
        unit_cost = costs.cost_per_area
        construction_cost = built_area * unit_cost
        foundation_cost = costs.foundation_cost

    else:
        built_area = project.total_built_area
        unit_cost = costs.cost_per_area
        study = project.feasibility_study
        if study is not None:
            if built_area == 0:
                built_area = _study_land_area(project) * _potential(project)
            if study.construction_cost_per_area:
                unit_cost = study.construction_cost_per_area
        construction_cost = built_area * unit_cost
        foundation_cost = costs.foundation_cost

    return {
        "built_area": built_area,
        "unit_cost": unit_cost,
        "construction_cost": construction_cost,
        "foundation_cost": foundation_cost,
        "total_construction": construction_cost + foundation_cost,
    }


def _potential(project: ProjectInput) -> float:
    study = project.feasibility_study
    potential = study.construction_potential if study is not None else 0.0
    return potential or project.zoning.utilization_coefficient


def _study_land_area(project: ProjectInput) -> float:
    study = project.feasibility_study
    if study is not None and study.land_area:
        return study.land_area
    return project.land_area


def _revenue(project: ProjectInput, built_area: float) -> dict[str, float]:
    """Resolve VGV, private area and efficiency for the active revenue source."""
    revenue = project.revenue

    if isinstance(revenue, UnitMix):
        vgv = sum(u.quantity * u.area * u.price_per_area for u in revenue.units)
        private_area = sum(u.quantity * u.area for u in revenue.units)
        return {
            "vgv": vgv,
            "private_area": private_area,
            "efficiency": _ratio(private_area, built_area) * 100,
            "built_area": built_area,
        }

    study = revenue.study
    effective_built = _study_land_area(project) * _potential(project)
    private_area = effective_built * study.efficiency / 100
    return {
        "vgv": private_area * study.sale_price_per_area,
        "private_area": private_area,
        "efficiency": study.efficiency,
        "built_area": built_area if built_area != 0 else effective_built,
    }


def construction_time_months(project: ProjectInput, built_area: float) -> int:
    """Estimate construction duration in whole months (minimum 3)."""
    zoning = project.zoning
    if project.project_type == ProjectType.HOUSE:
        estimate = HOUSE_BASE_MONTHS + built_area / HOUSE_AREA_PER_MONTH
    elif zoning.standard_floors > 0:
        estimate = (
            FLOOR_BASE_MONTHS
            + zoning.garage_floors * MONTHS_PER_FLOOR["garage"]
            + zoning.standard_floors * MONTHS_PER_FLOOR["standard"]
            + zoning.leisure_floors * MONTHS_PER_FLOOR["leisure"]
            + zoning.penthouse_floors * MONTHS_PER_FLOOR["penthouse"]
        )
    else:
        estimate = BUILDING_BASE_MONTHS + built_area / BUILDING_AREA_PER_MONTH
    return max(MIN_CONSTRUCTION_MONTHS, math.ceil(estimate))


def build_cash_flow(
    months: int,
    total_construction: float,
    upfront: float,
    marketing: float,
) -> np.ndarray:
    """Monthly outflows: phased construction, month-1 lump sum, linear marketing.

    Construction follows 20% / 60% / 20% over ceil(20%) / ceil(60%) / rest of
    the months. An empty final phase hands its share to the middle phase.
    """
    months = max(1, months)
    initial = min(months, math.ceil(months * PHASE_MONTHS[0]))
    middle = min(months - initial, math.ceil(months * PHASE_MONTHS[1]))
    final = months - initial - middle

    shares = list(PHASE_COST)
    if final == 0:
        shares[1] += shares[2]
        shares[2] = 0.0
    if middle == 0:
        shares[0] += shares[1]
        shares[1] = 0.0

    phases = []
    for length, share in zip((initial, middle, final), shares):
        if length > 0:
            phases.append(np.full(length, total_construction * share / length))
    schedule = np.concatenate(phases)

    schedule[0] += upfront
    schedule += marketing / months
    return schedule


def _quick_study(
    project: ProjectInput,
    flat_unit_cost: float,
) -> dict[str, Any]:
    """Back-of-envelope land study: hard cost, soft cost and land ceiling."""
    study = project.feasibility_study
    land_area = _study_land_area(project)
    built_area = land_area * _potential(project)
    private_area = built_area * study.efficiency / 100
    vgv = private_area * study.sale_price_per_area

    hard_cost = built_area * (study.construction_cost_per_area or flat_unit_cost)
    soft_cost = _pct(vgv, study.soft_cost_rate)
    profit = vgv - hard_cost - soft_cost - study.asking_price
    margin = _ratio(profit, vgv) * 100

    return {
        "land_area": land_area,
        "built_area": built_area,
        "private_area": private_area,
        "vgv": vgv,
        "hard_cost": hard_cost,
        "soft_cost": soft_cost,
        "land_cost": study.asking_price,
        "physical_swap": study.physical_swap,
        "financial_swap": study.financial_swap,
        "profit": profit,
        "margin": margin,
        "required_margin": study.required_margin,
        "meets_required_margin": margin >= study.required_margin,
        "max_land_price": vgv * (1 - study.required_margin / 100) - hard_cost - soft_cost,
    }


def _sensitivity(
    vgv: float,
    total_construction: float,
    fixed_costs: float,
    vgv_rate_pct: float,
) -> dict[str, Any]:
    """Margin (%) grid: sale price multipliers (rows) x construction cost (cols)."""
    scaled_vgv = vgv * SENSITIVITY_STEPS[:, None]
    scaled_construction = total_construction * SENSITIVITY_STEPS[None, :]
    profit = scaled_vgv * (1 - vgv_rate_pct / 100) - scaled_construction - fixed_costs
    safe_vgv = np.where(scaled_vgv != 0, scaled_vgv, 1.0)
    margin = np.where(scaled_vgv != 0, profit / safe_vgv * 100, 0.0)

    return {
        "sale_price_factors": SENSITIVITY_STEPS,
        "construction_cost_factors": SENSITIVITY_STEPS,
        "vgv_range": vgv * SENSITIVITY_STEPS,
        "construction_cost_range": total_construction * SENSITIVITY_STEPS,
        "margin_matrix": margin,
    }


# ---------------------------------------------------------------------------
# Core computation
# ---------------------------------------------------------------------------

def compute_feasibility(project: ProjectInput) -> dict[str, Any]:
    """Compute the full feasibility result for one project scenario.

    Args:
        project: Fully populated ProjectInput.

    Returns:
        FeasibilityResult dictionary (JSON-native values only).
    """
    fin = project.financials

    # ---------------------------------------------------------------
    # 1. Construction cost (segmented > detailed > flat, fixed by variant)
    # ---------------------------------------------------------------
    construction = _construction(project)
    total_construction = construction["total_construction"]

    # ---------------------------------------------------------------
    # 2-3. Revenue, private area, built area for KPIs
    # ---------------------------------------------------------------
    revenue = _revenue(project, construction["built_area"])
    vgv = revenue["vgv"]
    private_area = revenue["private_area"]
    built_area = revenue["built_area"]
    # KPIs follow the study's land only when the study drives revenue
    land_area = (
        _study_land_area(project) if isinstance(project.revenue, QuickStudy) else project.land_area
    )
    permitted_area = land_area * project.zoning.utilization_coefficient

    # ---------------------------------------------------------------
    # 4. Land
    # ---------------------------------------------------------------
    land_value = project.land_value
    land_commission = _pct(land_value, fin.land_commission_pct)
    land_taxes = _pct(land_value, fin.land_registry_pct)
    land_total = land_value + land_commission + land_taxes

    # ---------------------------------------------------------------
    # 5. Construction split
    # ---------------------------------------------------------------
    indirect_construction = _pct(total_construction, fin.indirect_costs_pct)
    direct_construction = total_construction - indirect_construction

    # ---------------------------------------------------------------
    # 6-7. Sales deductions and expenses
    # ---------------------------------------------------------------
    taxes_value = _pct(vgv, fin.taxes_pct)
    sales_commission = _pct(vgv, fin.sale_commission_pct)
    total_expenses = project.documentation_cost + project.marketing_cost + project.other_costs

    # ---------------------------------------------------------------
    # 8. Bottom line
    # ---------------------------------------------------------------
    profit = vgv - land_total - total_construction - total_expenses - taxes_value - sales_commission
    total_cost = total_construction + land_total + total_expenses + taxes_value + sales_commission
    roi = _ratio(profit, total_cost) * 100
    margin = _ratio(profit, vgv) * 100

    # ---------------------------------------------------------------
    # 9. Cost breakdown
    # ---------------------------------------------------------------
    breakdown = [
        {"category": category, "value": value, "percentage": _ratio(value, total_cost) * 100}
        for category, value in (
            ("Construction", total_construction),
            ("Land", land_value + land_commission),
            ("Taxes", taxes_value + land_taxes),
            ("Expenses", total_expenses + sales_commission),
        )
    ]

    # ---------------------------------------------------------------
    # 10-11. Schedule
    # ---------------------------------------------------------------
    months = construction_time_months(project, built_area)
    schedule = build_cash_flow(
        months,
        total_construction,
        upfront=land_total + project.documentation_cost + project.other_costs,
        marketing=project.marketing_cost,
    )
    cumulative = np.cumsum(schedule)
    cash_flow = [
        {"month": i + 1, "amount": amount, "cumulative": cum}
        for i, (amount, cum) in enumerate(zip(schedule, cumulative))
    ]

    # ---------------------------------------------------------------
    # 12. Dashboard
    # ---------------------------------------------------------------
    marketing_launch = _pct(project.marketing_cost, fin.marketing_split_launch)
    admin = project.documentation_cost + project.other_costs

    dashboard = {
        "synthetic": {
            "revenue": vgv,
            "land_cost": land_total,
            "construction_cost": total_construction,
            "expenses": total_expenses + sales_commission,
            "taxes": taxes_value,
            "result": profit,
            "margin": margin,
        },
        "analytical": {
            "revenue": {"total": vgv},
            "land": {
                "total": land_total,
                "acquisition": land_value,
                "commission": land_commission,
                "taxes": land_taxes,
            },
            "construction": {
                "total": total_construction,
                "direct": direct_construction,
                "indirect": indirect_construction,
            },
            "expenses": {
                "total": total_expenses + sales_commission,
                "marketing_launch": marketing_launch,
                "marketing_maintenance": project.marketing_cost - marketing_launch,
                "admin": admin,
                "sales": sales_commission,
            },
            "taxes": {"total": taxes_value},
        },
        "kpis": {
            "land_area": land_area,
            "built_area": built_area,
            "private_area": private_area,
            "efficiency": revenue["efficiency"],
            "occupancy_rate": project.zoning.occupancy_rate,
            "utilization": _ratio(built_area, land_area),
            "vgv_per_private_area": _ratio(vgv, private_area),
            "cost_per_built_area": _ratio(total_construction, built_area),
            "cash_exposure": land_total + total_construction * EXPOSURE_CONSTRUCTION_SHARE,
            "max_land_value": (
                vgv * MAX_LAND_VGV_FACTOR
                - total_construction - total_expenses - taxes_value - sales_commission
            ),
        },
    }

    quick_study = None
    if project.feasibility_study is not None:
        flat_cost = project.construction.cost_per_area if isinstance(project.construction, FlatCosts) else 0.0
        quick_study = _quick_study(project, flat_cost)

    sensitivity = _sensitivity(
        vgv,
        total_construction,
        fixed_costs=land_total + total_expenses,
        vgv_rate_pct=fin.taxes_pct + fin.sale_commission_pct,
    )

    # ---------------------------------------------------------------
    # Assemble result
    # ---------------------------------------------------------------
    result = {
        "cost_mode": project.construction.mode,
        "revenue_source": project.revenue.source,
        "construction_cost": construction["construction_cost"],
        "foundation_cost": construction["foundation_cost"],
        "total_construction": total_construction,
        "total_cost": total_cost,
        "vgv": vgv,
        "profit": profit,
        "roi": roi,
        "margin": margin,
        "construction_time_months": months,
        "permitted_area": permitted_area,
        "land_area": land_area,
        "built_area": built_area,
        "private_area": private_area,
        "land_costs": {
            "land_value": land_value,
            "commission": land_commission,
            "taxes": land_taxes,
            "total": land_total,
        },
        "sales_deductions": {
            "taxes": taxes_value,
            "commission": sales_commission,
        },
        "total_expenses": total_expenses,
        "breakdown": breakdown,
        "cash_flow": cash_flow,
        "dashboard": dashboard,
        "quick_study": quick_study,
        "sensitivity": sensitivity,
    }

    # Convert numpy types
    return json.loads(json.dumps(result, default=_np_serialize))


def _np_serialize(obj: Any) -> Any:
    """JSON serializer for numpy types."""
    if isinstance(obj, (np.integer,)):
        return int(obj)
    if isinstance(obj, (np.floating,)):
        return float(obj)
    if isinstance(obj, (np.bool_,)):
        return bool(obj)
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    raise TypeError(f"Not serializable: {type(obj)}")
