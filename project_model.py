"""Project input model for the development feasibility calculator.

One ``ProjectInput`` describes a single real-estate development scenario:
land, construction cost mode, product mix (or quick study) and financial
assumptions. Documents are stored with camelCase keys, the shape used by the
hosted ``projects`` table.

Usage:
    from project_model import ProjectInput, default_project
    project = ProjectInput.model_validate(document)
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class _Model(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ---------------------------------------------------------------------------
# Enums and lookup tables
# ---------------------------------------------------------------------------

class ProjectType(str, Enum):
    HOUSE = "Casa"
    BUILDING = "Prédio"


class StandardType(str, Enum):
    LOW = "Baixo"
    NORMAL = "Normal"
    HIGH = "Alto"


class LandStatus(str, Enum):
    ANALYSIS = "Em Análise"
    NEGOTIATION = "Em Negociação"
    BOUGHT = "Comprado"
    DISCARDED = "Descartado"


# CUB (R$/m²) by finishing standard
DEFAULT_CUB: dict[StandardType, float] = {
    StandardType.LOW: 1950.45,
    StandardType.NORMAL: 2480.20,
    StandardType.HIGH: 3120.90,
}


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------

class Zoning(_Model):
    occupancy_rate: float = 0.0          # %
    utilization_coefficient: float = 0.0  # x
    min_setback: float = 0.0             # m
    max_height: float = 0.0              # m
    garage_floors: int = 0
    standard_floors: int = 0
    penthouse_floors: int = 0
    leisure_floors: int = 0


class Media(_Model):
    location_link: str | None = None
    image_urls: list[str] = Field(default_factory=list)
    project_files: list[str] = Field(default_factory=list)


class FinancialAssumptions(_Model):
    """Percentages as whole numbers (6 means 6%)."""

    land_commission_pct: float = 6.0
    land_registry_pct: float = 4.0
    sale_commission_pct: float = 4.0
    taxes_pct: float = 4.09
    marketing_split_launch: float = 60.0
    indirect_costs_pct: float = 10.0


class Unit(_Model):
    id: str | None = None
    name: str = ""
    quantity: float = 0.0
    area: float = 0.0
    price_per_area: float = Field(0.0, alias="pricePerSqm")


class QuickFeasibility(_Model):
    land_area: float = 0.0
    asking_price: float = 0.0
    physical_swap: float = 0.0           # % permuta física
    financial_swap: float = 0.0          # % permuta financeira
    construction_potential: float = 0.0
    efficiency: float = 0.0              # %
    sale_price_per_area: float = Field(0.0, alias="salePricePerSqm")
    construction_cost_per_area: float = Field(0.0, alias="constructionCostPerSqm")
    soft_cost_rate: float = 10.0         # % of VGV
    required_margin: float = 20.0        # %


# ---------------------------------------------------------------------------
# Construction cost modes
# ---------------------------------------------------------------------------

class FlatCosts(_Model):
    mode: Literal["flat"] = "flat"
    cost_per_area: float = 0.0           # CUB-like average
    foundation_cost: float = 0.0


class DetailedCosts(_Model):
    mode: Literal["detailed"] = "detailed"
    structure: float = 0.0
    masonry: float = 0.0
    electrical: float = 0.0
    plumbing: float = 0.0
    finishing: float = 0.0
    roofing: float = 0.0
    foundation_cost: float = 0.0

    @property
    def cost_per_area(self) -> float:
        return (
            self.structure + self.masonry + self.electrical
            + self.plumbing + self.finishing + self.roofing
        )


class SegmentCost(_Model):
    area: float = 0.0
    price_per_area: float = Field(0.0, alias="pricePerSqm")


class SegmentedCosts(_Model):
    mode: Literal["segmented"] = "segmented"
    foundation_per_area: float = 0.0
    garage: SegmentCost = Field(default_factory=SegmentCost)
    leisure: SegmentCost = Field(default_factory=SegmentCost)
    standard: SegmentCost = Field(default_factory=SegmentCost)
    penthouse: SegmentCost = Field(default_factory=SegmentCost)

    def segments(self) -> list[SegmentCost]:
        return [self.garage, self.leisure, self.standard, self.penthouse]


ConstructionCosts = Annotated[
    Union[FlatCosts, DetailedCosts, SegmentedCosts],
    Field(discriminator="mode"),
]


# ---------------------------------------------------------------------------
# Revenue sources
# ---------------------------------------------------------------------------

class UnitMix(_Model):
    source: Literal["units"] = "units"
    units: list[Unit] = Field(min_length=1)


class QuickStudy(_Model):
    source: Literal["quick"] = "quick"
    study: QuickFeasibility = Field(default_factory=QuickFeasibility)


RevenueSource = Annotated[
    Union[UnitMix, QuickStudy],
    Field(discriminator="source"),
]


# ---------------------------------------------------------------------------
# Project
# ---------------------------------------------------------------------------

class ProjectInput(_Model):
    id: str | None = None
    created_at: str | None = Field(None, alias="created_at")
    name: str = ""
    project_type: ProjectType = Field(ProjectType.BUILDING, alias="type")
    standard: StandardType = StandardType.NORMAL

    total_built_area: float = Field(0.0, alias="area")
    land_area: float = 0.0

    land_value: float = 0.0
    documentation_cost: float = 0.0
    marketing_cost: float = 0.0
    other_costs: float = 0.0

    zoning: Zoning = Field(default_factory=Zoning)
    construction: ConstructionCosts = Field(default_factory=FlatCosts)
    revenue: RevenueSource = Field(default_factory=QuickStudy)
    # Quick study kept alongside a unit mix; in quick mode it lives in revenue.study
    quick_feasibility: QuickFeasibility | None = None
    financials: FinancialAssumptions = Field(default_factory=FinancialAssumptions)
    media: Media = Field(default_factory=Media)

    broker_name: str | None = None
    broker_phone: str | None = None
    observations: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _from_legacy_document(cls, data: Any) -> Any:
        """Convert flag-based documents into the tagged variants.

        Precedence is fixed here: segmented > detailed > flat for cost,
        non-empty units > quick study for revenue.
        """
        if not isinstance(data, dict):
            return data
        data = dict(data)

        if "construction" not in data:
            if data.get("useSegmentedCosts"):
                seg = dict(data.get("segmentedCosts") or {})
                foundation = seg.pop("foundation", None) or {}
                data["construction"] = {
                    "mode": "segmented",
                    "foundationPerArea": foundation.get("pricePerSqm", 0),
                    **seg,
                }
            elif data.get("useDetailedCosts"):
                data["construction"] = {
                    "mode": "detailed",
                    **(data.get("detailedCosts") or {}),
                    "foundationCost": data.get("foundationCost", 0),
                }
            else:
                data["construction"] = {
                    "mode": "flat",
                    "costPerArea": data.get("cubValue", 0),
                    "foundationCost": data.get("foundationCost", 0),
                }

        if "revenue" not in data:
            units = data.get("units") or []
            if units:
                data["revenue"] = {"source": "units", "units": units}
            else:
                data["revenue"] = {
                    "source": "quick",
                    "study": data.pop("quickFeasibility", None) or {},
                }

        for legacy_key in (
            "useSegmentedCosts", "useDetailedCosts", "segmentedCosts",
            "detailedCosts", "cubValue", "foundationCost", "units",
            "unitPrice", "totalUnits",
        ):
            data.pop(legacy_key, None)
        return data

    @model_validator(mode="after")
    def _single_study_block(self) -> ProjectInput:
        if isinstance(self.revenue, QuickStudy) and self.quick_feasibility is not None:
            raise ValueError("quickFeasibility belongs in revenue.study when the revenue source is quick")
        return self

    @property
    def feasibility_study(self) -> QuickFeasibility | None:
        """The quick-feasibility block, whichever revenue source is active."""
        if isinstance(self.revenue, QuickStudy):
            return self.revenue.study
        return self.quick_feasibility


class LandRecord(_Model):
    """Entry of the land registry (terrenos prospectados)."""

    id: str | None = None
    created_at: str | None = Field(None, alias="created_at")
    code: str = ""
    description: str = ""
    zip_code: str = ""
    address: str = ""
    number: str = ""
    neighborhood: str = ""
    city: str = ""
    state: str = ""
    area: float = 0.0
    price: float = 0.0
    status: LandStatus = LandStatus.ANALYSIS
    notes: str = ""
    owner_name: str = ""
    owner_contact: str = ""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def to_document(model: BaseModel) -> dict[str, Any]:
    """Serialise a model to the camelCase JSON-native storage shape."""
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


def default_project() -> ProjectInput:
    """Starter scenario shown when a new project is created."""
    return ProjectInput(
        name="Meu Novo Empreendimento",
        project_type=ProjectType.BUILDING,
        standard=StandardType.NORMAL,
        total_built_area=1200,
        land_area=600,
        land_value=1_500_000,
        documentation_cost=80_000,
        marketing_cost=120_000,
        other_costs=50_000,
        zoning=Zoning(
            occupancy_rate=60,
            utilization_coefficient=2.5,
            min_setback=3.0,
            max_height=15.0,
            garage_floors=1,
            standard_floors=4,
            penthouse_floors=0,
            leisure_floors=1,
        ),
        construction=FlatCosts(
            cost_per_area=DEFAULT_CUB[StandardType.NORMAL],
            foundation_cost=350_000,
        ),
        revenue=UnitMix(units=[
            Unit(id="1", name="Tipo A (2 Quartos)", quantity=10, area=65, price_per_area=7500),
        ]),
        quick_feasibility=QuickFeasibility(
            land_area=1000,
            asking_price=2_000_000,
            construction_potential=2.5,
            efficiency=70,
            sale_price_per_area=12000,
            construction_cost_per_area=5500,
        ),
    )


def apply_standard(project: ProjectInput, standard: StandardType) -> ProjectInput:
    """Switch the finishing standard; flat mode picks up the CUB lookup."""
    update: dict[str, Any] = {"standard": standard}
    if isinstance(project.construction, FlatCosts):
        update["construction"] = project.construction.model_copy(
            update={"cost_per_area": DEFAULT_CUB[standard]},
        )
    return project.model_copy(update=update)


def apply_land(project: ProjectInput, land: LandRecord) -> ProjectInput:
    """Use a registry land record as the project's site."""
    return project.model_copy(update={"land_area": land.area, "land_value": land.price})
