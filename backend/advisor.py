"""Claude-powered narrative commentary on a feasibility result.

The model only comments; every number comes from feasibility_engine.
Failures never propagate: the caller always gets text back.
"""

from __future__ import annotations

import logging
from typing import Any

from anthropic import AsyncAnthropic

from project_model import ProjectInput

log = logging.getLogger("advisor")

ADVISOR_ERROR_MESSAGE = (
    "Não foi possível gerar a análise da IA no momento. "
    "Verifique sua conexão ou tente novamente mais tarde."
)

SYSTEM_PROMPT = """Você é um consultor sênior de incorporação imobiliária no Brasil, com experiência em:
- Estudos de viabilidade de empreendimentos residenciais (casas e prédios)
- Custos de construção (CUB, custos diretos e indiretos, fundações)
- Estrutura de aquisição de terrenos (compra, permuta física e financeira, ITBI)
- Tributação sobre vendas (RET, PIS/COFINS) e comissões de corretagem

REGRAS:
- NUNCA refaça cálculos. Todos os números vêm do motor de cálculo.
- Para sugerir cenários, descreva quais premissas alterar; o sistema recalcula.
- Moeda: Real (R$). Áreas em metros quadrados (m²)."""


def _brl(value: float) -> str:
    return f"R$ {value:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")


def build_prompt(
    project: ProjectInput,
    result: dict[str, Any],
    question: str | None = None,
) -> str:
    """Render the project summary the advisor comments on."""
    kpis = result.get("dashboard", {}).get("kpis", {})
    prompt = f"""Analise a viabilidade deste empreendimento imobiliário no Brasil:
Nome: {project.name}
Tipo: {project.project_type.value} (Padrão {project.standard.value})
Área construída: {result.get('built_area', 0):,.0f} m²
Área privativa: {result.get('private_area', 0):,.0f} m²
Custo do Terreno: {_brl(project.land_value)}
VGV Projetado: {_brl(result.get('vgv', 0))}
Custo de Obra: {_brl(result.get('total_construction', 0))}
Custo Total: {_brl(result.get('total_cost', 0))}
Lucro Estimado: {_brl(result.get('profit', 0))}
ROI: {result.get('roi', 0):.2f}%
Margem Líquida: {result.get('margin', 0):.2f}%
Prazo de Obra: {result.get('construction_time_months', 0)} meses
Exposição de Caixa (est.): {_brl(kpis.get('cash_exposure', 0))}
Teto para o Terreno (est.): {_brl(kpis.get('max_land_value', 0))}

Por favor, forneça:
1. Uma breve avaliação da lucratividade.
2. Riscos potenciais (ex: custo de fundação alto para a área, margem apertada).
3. Sugestões de melhoria (ex: otimização de m² ou aumento do VGV).
4. Conclusão se o projeto parece viável.

Responda em formato Markdown, seja profissional e técnico."""

    if question:
        prompt += f"\n\n---\n\n**Pergunta:** {question}"
    return prompt


async def analyze_feasibility(
    anthropic_client: AsyncAnthropic | None,
    project: ProjectInput,
    result: dict[str, Any],
    question: str | None = None,
    model: str = "claude-sonnet-4-20250514",
) -> str:
    """Get narrative commentary for a computed scenario.

    Args:
        anthropic_client: Initialized AsyncAnthropic client, or None.
        project: Scenario inputs.
        result: Output of compute_feasibility for ``project``.
        question: Optional follow-up question from the user.
        model: Claude model to use.

    Returns:
        Markdown text, or ADVISOR_ERROR_MESSAGE on any failure.
    """
    if anthropic_client is None:
        log.warning("Advisor called without an Anthropic client")
        return ADVISOR_ERROR_MESSAGE

    messages = [{"role": "user", "content": build_prompt(project, result, question)}]

    try:
        response = await anthropic_client.messages.create(
            model=model,
            max_tokens=4096,
            system=SYSTEM_PROMPT,
            messages=messages,
        )

        text = ""
        for block in response.content:
            if hasattr(block, "text"):
                text += block.text
        return text

    except Exception as exc:
        log.error("Claude API error: %s", exc, exc_info=True)
        return ADVISOR_ERROR_MESSAGE
