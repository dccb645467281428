"""Excel feasibility report.

Produces an .xlsx with Portuguese labels: summary, assumptions, analytical
P&L, monthly cash flow, cost composition and sensitivity, with charts.
"""

from __future__ import annotations

import io
from typing import Any

from openpyxl import Workbook
from openpyxl.chart import BarChart, PieChart, Reference
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from project_model import DetailedCosts, ProjectInput, SegmentedCosts, UnitMix

# ---------------------------------------------------------------------------
# Style constants
# ---------------------------------------------------------------------------

HEADER_FILL = PatternFill(start_color="1E3A8A", end_color="1E3A8A", fill_type="solid")
HEADER_FONT = Font(name="Calibri", bold=True, color="FFFFFF", size=11)
SECTION_FILL = PatternFill(start_color="E2E8F0", end_color="E2E8F0", fill_type="solid")
SECTION_FONT = Font(name="Calibri", bold=True, size=11)
LABEL_FONT = Font(name="Calibri", size=10)
VALUE_FONT = Font(name="Calibri", size=10)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)
BRL_FMT = '"R$" #,##0.00;[Red]-"R$" #,##0.00'
AREA_FMT = '#,##0.00 "m²"'
NUM_FMT = "#,##0.00"
PCT_FMT = '0.00"%"'
LEFT = Alignment(horizontal="left", vertical="center", wrap_text=True)
RIGHT = Alignment(horizontal="right", vertical="center")
CENTER = Alignment(horizontal="center", vertical="center")

GOOD_FILL = PatternFill(start_color="C8E6C9", end_color="C8E6C9", fill_type="solid")
FAIR_FILL = PatternFill(start_color="FFF9C4", end_color="FFF9C4", fill_type="solid")
BAD_FILL = PatternFill(start_color="FFCDD2", end_color="FFCDD2", fill_type="solid")

BREAKDOWN_LABELS = {
    "Construction": "Obra",
    "Land": "Terreno",
    "Taxes": "Impostos",
    "Expenses": "Despesas",
}


def _style_header(ws, row: int, cols: int) -> None:
    for c in range(1, cols + 1):
        cell = ws.cell(row=row, column=c)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.alignment = CENTER
        cell.border = THIN_BORDER


def _write_row(ws, row: int, label: str, value: Any, fmt: str = BRL_FMT,
               col_label: int = 2, col_value: int = 4) -> None:
    lc = ws.cell(row=row, column=col_label, value=label)
    lc.font = LABEL_FONT
    lc.alignment = LEFT
    lc.border = THIN_BORDER
    vc = ws.cell(row=row, column=col_value, value=value)
    vc.font = VALUE_FONT
    vc.number_format = fmt
    vc.alignment = RIGHT
    vc.border = THIN_BORDER


def _section_header(ws, row: int, title: str, cols: int = 5) -> None:
    for c in range(1, cols + 1):
        cell = ws.cell(row=row, column=c)
        cell.fill = SECTION_FILL
        cell.font = SECTION_FONT
        cell.border = THIN_BORDER
    ws.cell(row=row, column=2, value=title).alignment = LEFT


def _sheet(wb: Workbook, title: str, widths: dict[str, int], first: bool = False):
    ws = wb.active if first else wb.create_sheet(title)
    ws.title = title
    for col, width in widths.items():
        ws.column_dimensions[col].width = width
    return ws


# ---------------------------------------------------------------------------
# Sheet builders
# ---------------------------------------------------------------------------

def _build_summary_sheet(wb: Workbook, project: ProjectInput, result: dict) -> None:
    ws = _sheet(wb, "Resumo", {"B": 34, "C": 4, "D": 24}, first=True)
    _style_header(ws, 1, 5)
    ws.cell(row=1, column=2, value=f"Estudo de Viabilidade - {project.name}")
    ws.merge_cells("B1:D1")

    kpis = result.get("dashboard", {}).get("kpis", {})
    items = [
        ("Tipo", project.project_type.value, "@"),
        ("Padrão", project.standard.value, "@"),
        ("Área do terreno", result.get("land_area"), AREA_FMT),
        ("Área construída", result.get("built_area"), AREA_FMT),
        ("Área privativa", result.get("private_area"), AREA_FMT),
        ("Área permitida (zoneamento)", result.get("permitted_area"), AREA_FMT),
        ("", "", None),
        ("VGV", result.get("vgv"), BRL_FMT),
        ("Custo total", result.get("total_cost"), BRL_FMT),
        ("Resultado líquido", result.get("profit"), BRL_FMT),
        ("ROI", result.get("roi"), PCT_FMT),
        ("Margem líquida", result.get("margin"), PCT_FMT),
        ("Prazo de obra (meses)", result.get("construction_time_months"), "0"),
        ("", "", None),
        ("Exposição de caixa (est.)", kpis.get("cash_exposure"), BRL_FMT),
        ("Teto para o terreno (est.)", kpis.get("max_land_value"), BRL_FMT),
    ]
    r = 3
    for label, val, fmt in items:
        if label == "":
            r += 1
            continue
        _write_row(ws, r, label, val, fmt)
        r += 1

    if project.broker_name or project.broker_phone:
        r += 1
        _write_row(ws, r, "Corretor", project.broker_name or "", "@")
        r += 1
        _write_row(ws, r, "Telefone", project.broker_phone or "", "@")
    if project.observations:
        r += 1
        _write_row(ws, r, "Observações", project.observations, "@")


def _construction_rows(project: ProjectInput) -> list[tuple[str, Any, str]]:
    costs = project.construction
    if isinstance(costs, SegmentedCosts):
        rows = [("Modo de custo", "Por tipologia", "@"),
                ("Fundação (R$/m²)", costs.foundation_per_area, BRL_FMT)]
        for label, seg in (("Garagem", costs.garage), ("Lazer", costs.leisure),
                           ("Tipo", costs.standard), ("Cobertura", costs.penthouse)):
            rows.append((f"{label} - área", seg.area, AREA_FMT))
            rows.append((f"{label} - R$/m²", seg.price_per_area, BRL_FMT))
        return rows
    if isinstance(costs, DetailedCosts):
        return [
            ("Modo de custo", "Detalhado", "@"),
            ("Estrutura (R$/m²)", costs.structure, BRL_FMT),
            ("Alvenaria (R$/m²)", costs.masonry, BRL_FMT),
            ("Elétrica (R$/m²)", costs.electrical, BRL_FMT),
            ("Hidráulica (R$/m²)", costs.plumbing, BRL_FMT),
            ("Acabamento (R$/m²)", costs.finishing, BRL_FMT),
            ("Cobertura (R$/m²)", costs.roofing, BRL_FMT),
            ("Fundação", costs.foundation_cost, BRL_FMT),
        ]
    return [
        ("Modo de custo", "CUB médio", "@"),
        ("Custo por m²", costs.cost_per_area, BRL_FMT),
        ("Fundação", costs.foundation_cost, BRL_FMT),
    ]


def _build_assumptions_sheet(wb: Workbook, project: ProjectInput) -> None:
    ws = _sheet(wb, "Premissas", {"B": 36, "C": 4, "D": 22})
    _style_header(ws, 1, 5)
    ws.cell(row=1, column=2, value="Premissas")

    r = 3
    _section_header(ws, r, "Custos de obra")
    r += 1
    for label, val, fmt in _construction_rows(project):
        _write_row(ws, r, label, val, fmt)
        r += 1

    r += 1
    _section_header(ws, r, "Custos fixos")
    r += 1
    for label, val in [
        ("Valor do terreno", project.land_value),
        ("Documentação", project.documentation_cost),
        ("Marketing", project.marketing_cost),
        ("Outros custos", project.other_costs),
    ]:
        _write_row(ws, r, label, val)
        r += 1

    r += 1
    _section_header(ws, r, "Receitas")
    r += 1
    revenue = project.revenue
    if isinstance(revenue, UnitMix):
        for unit in revenue.units:
            label = unit.name or f"Unidade {unit.id or ''}".strip()
            _write_row(ws, r, f"{label} ({unit.quantity:g} x {unit.area:g} m²)",
                       unit.price_per_area, BRL_FMT)
            r += 1

    study = project.feasibility_study
    if study is not None:
        if isinstance(revenue, UnitMix):
            r += 1
            _section_header(ws, r, "Estudo rápido")
            r += 1
        for label, val, fmt in [
            ("Área do terreno (estudo)", study.land_area, AREA_FMT),
            ("Valor pedido", study.asking_price, BRL_FMT),
            ("Permuta física", study.physical_swap, PCT_FMT),
            ("Permuta financeira", study.financial_swap, PCT_FMT),
            ("Potencial construtivo (x)", study.construction_potential, NUM_FMT),
            ("Eficiência", study.efficiency, PCT_FMT),
            ("Preço de venda (R$/m²)", study.sale_price_per_area, BRL_FMT),
            ("Custo de obra (R$/m²)", study.construction_cost_per_area, BRL_FMT),
            ("Despesas/impostos", study.soft_cost_rate, PCT_FMT),
            ("Margem desejada", study.required_margin, PCT_FMT),
        ]:
            _write_row(ws, r, label, val, fmt)
            r += 1

    r += 1
    _section_header(ws, r, "Premissas financeiras")
    r += 1
    fin = project.financials
    for label, val in [
        ("Comissão compra do terreno", fin.land_commission_pct),
        ("ITBI e registro", fin.land_registry_pct),
        ("Comissão de venda", fin.sale_commission_pct),
        ("Impostos sobre venda (RET)", fin.taxes_pct),
        ("Marketing no lançamento", fin.marketing_split_launch),
        ("Custos indiretos de obra", fin.indirect_costs_pct),
    ]:
        _write_row(ws, r, label, val, PCT_FMT)
        r += 1


def _build_pnl_sheet(wb: Workbook, result: dict) -> None:
    ws = _sheet(wb, "DRE", {"B": 40, "C": 4, "D": 22, "E": 12})
    _style_header(ws, 1, 5)
    ws.cell(row=1, column=2, value="Resultado Analítico")

    an = result.get("dashboard", {}).get("analytical", {})
    vgv = result.get("vgv", 0)

    def pct_of_vgv(value: float) -> float:
        return value / vgv * 100 if vgv else 0.0

    rows = [
        ("Receitas", an.get("revenue", {}).get("total"), True),
        ("Receitas de vendas", an.get("revenue", {}).get("total"), False),
        ("Terreno", an.get("land", {}).get("total"), True),
        ("Aquisição terreno", an.get("land", {}).get("acquisition"), False),
        ("Comissões compra", an.get("land", {}).get("commission"), False),
        ("ITBI e registro", an.get("land", {}).get("taxes"), False),
        ("Obra", an.get("construction", {}).get("total"), True),
        ("Custo direto (mat./mão de obra)", an.get("construction", {}).get("direct"), False),
        ("Custo indireto / projetos", an.get("construction", {}).get("indirect"), False),
        ("Despesas", an.get("expenses", {}).get("total"), True),
        ("Marketing (lançamento)", an.get("expenses", {}).get("marketing_launch"), False),
        ("Marketing (manutenção)", an.get("expenses", {}).get("marketing_maintenance"), False),
        ("Comissões venda", an.get("expenses", {}).get("sales"), False),
        ("Administrativo / outros", an.get("expenses", {}).get("admin"), False),
        ("Impostos", an.get("taxes", {}).get("total"), True),
        ("Resultado do exercício", result.get("profit"), True),
    ]

    r = 3
    ws.cell(row=r, column=2, value="Conta").font = SECTION_FONT
    ws.cell(row=r, column=4, value="Valor").font = SECTION_FONT
    ws.cell(row=r, column=5, value="% VGV").font = SECTION_FONT
    r += 1
    for label, val, is_total in rows:
        val = val or 0.0
        _write_row(ws, r, label if is_total else f"    {label}", val)
        pc = ws.cell(row=r, column=5, value=pct_of_vgv(val))
        pc.number_format = PCT_FMT
        pc.border = THIN_BORDER
        if is_total:
            for c in (2, 4, 5):
                ws.cell(row=r, column=c).font = SECTION_FONT
        r += 1


def _build_cashflow_sheet(wb: Workbook, result: dict) -> None:
    ws = _sheet(wb, "Fluxo de Caixa", {"B": 10, "C": 20, "D": 20})
    _style_header(ws, 1, 4)
    ws.cell(row=1, column=2, value="Fluxo de Caixa Mensal")

    r = 3
    for col, title in ((2, "Mês"), (3, "Desembolso"), (4, "Acumulado")):
        cell = ws.cell(row=r, column=col, value=title)
        cell.font = SECTION_FONT
        cell.alignment = CENTER

    cash_flow = result.get("cash_flow", [])
    first = r + 1
    for entry in cash_flow:
        r += 1
        ws.cell(row=r, column=2, value=entry["month"]).alignment = CENTER
        for col, key in ((3, "amount"), (4, "cumulative")):
            cell = ws.cell(row=r, column=col, value=entry[key])
            cell.number_format = BRL_FMT
            cell.border = THIN_BORDER

    if cash_flow:
        chart = BarChart()
        chart.title = "Desembolso mensal"
        chart.type = "col"
        chart.y_axis.title = "R$"
        data = Reference(ws, min_col=3, min_row=first - 1, max_row=r)
        cats = Reference(ws, min_col=2, min_row=first, max_row=r)
        chart.add_data(data, titles_from_data=True)
        chart.set_categories(cats)
        chart.width = 20
        chart.height = 12
        ws.add_chart(chart, "F3")


def _build_breakdown_sheet(wb: Workbook, result: dict) -> None:
    ws = _sheet(wb, "Composição de Custos", {"B": 24, "C": 4, "D": 22, "E": 12})
    _style_header(ws, 1, 5)
    ws.cell(row=1, column=2, value="Composição do Custo Total")

    r = 3
    ws.cell(row=r, column=2, value="Categoria").font = SECTION_FONT
    ws.cell(row=r, column=4, value="Valor").font = SECTION_FONT
    ws.cell(row=r, column=5, value="%").font = SECTION_FONT
    r += 1
    data_start = r
    for item in result.get("breakdown", []):
        _write_row(ws, r, BREAKDOWN_LABELS.get(item["category"], item["category"]), item["value"])
        pc = ws.cell(row=r, column=5, value=item["percentage"])
        pc.number_format = PCT_FMT
        pc.border = THIN_BORDER
        r += 1

    if r > data_start:
        pie = PieChart()
        pie.title = "Composição de custos"
        labels = Reference(ws, min_col=2, min_row=data_start, max_row=r - 1)
        data = Reference(ws, min_col=4, min_row=data_start, max_row=r - 1)
        pie.add_data(data)
        pie.set_categories(labels)
        pie.width = 18
        pie.height = 14
        ws.add_chart(pie, f"B{r + 2}")


def _build_sensitivity_sheet(wb: Workbook, result: dict) -> None:
    ws = _sheet(wb, "Sensibilidade", {"B": 22})

    sens = result.get("sensitivity")
    if not sens:
        ws.cell(row=2, column=2, value="Sem dados de sensibilidade")
        return

    vgv_range = sens.get("vgv_range", [])
    cost_range = sens.get("construction_cost_range", [])
    matrix = sens.get("margin_matrix", [])

    for i in range(len(cost_range)):
        ws.column_dimensions[get_column_letter(3 + i)].width = 16

    _style_header(ws, 1, 2 + len(cost_range))
    ws.cell(row=1, column=2, value="Sensibilidade - Margem Líquida")

    ws.cell(row=3, column=2, value="VGV \\ Custo de obra").font = SECTION_FONT
    for i, c in enumerate(cost_range):
        cell = ws.cell(row=3, column=3 + i, value=c)
        cell.font = SECTION_FONT
        cell.number_format = "#,##0"
        cell.alignment = CENTER

    for ri, vgv in enumerate(vgv_range):
        r = 4 + ri
        cell = ws.cell(row=r, column=2, value=vgv)
        cell.number_format = "#,##0"
        cell.font = LABEL_FONT
        for ci, margin in enumerate(matrix[ri]):
            cell = ws.cell(row=r, column=3 + ci, value=margin)
            cell.number_format = PCT_FMT
            if margin >= 15:
                cell.fill = GOOD_FILL
            elif margin >= 0:
                cell.fill = FAIR_FILL
            else:
                cell.fill = BAD_FILL
            cell.border = THIN_BORDER
            cell.alignment = CENTER


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def generate_excel(project: ProjectInput, result: dict) -> bytes:
    """Generate the .xlsx feasibility report.

    Args:
        project: Scenario inputs.
        result: Output of compute_feasibility for ``project``.

    Returns:
        bytes: .xlsx file content.
    """
    wb = Workbook()

    _build_summary_sheet(wb, project, result)
    _build_assumptions_sheet(wb, project)
    _build_pnl_sheet(wb, result)
    _build_cashflow_sheet(wb, result)
    _build_breakdown_sheet(wb, result)
    _build_sensitivity_sheet(wb, result)

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf.getvalue()
