"""Section-type specific authoring and editorial guidance.

Both tables are ordered: the first category whose keywords appear in the
lowercased section title wins.
"""

from __future__ import annotations

from memogen.models.memo_models import SectionKind

GENERATION_GUIDANCE: list[tuple[tuple[str, ...], list[str]]] = [
    (
        ("executive summary",),
        [
            "Create a compelling, concise executive summary highlighting the key investment attributes",
            "Focus on the most attractive elements of the investment opportunity",
            "Highlight expected returns and key value drivers",
            "Keep to 3-4 paragraphs maximum",
        ],
    ),
    (
        ("property", "asset"),
        [
            "Provide detailed information about the physical attributes of the property",
            "Include specifics about size, condition, amenities, and distinctive features",
            "Describe the location advantages in detail",
            "Include relevant historical information about the property",
        ],
    ),
    (
        ("market",),
        [
            "Provide data-driven insights about the local real estate market",
            "Include demographic trends, growth projections, and economic indicators",
            "Analyze supply and demand dynamics specific to this property type",
            "Compare to national benchmarks where relevant",
        ],
    ),
    (
        ("financial", "returns"),
        [
            "Present projected financial performance with clear assumptions",
            "Focus on key metrics: NOI, Cash Flow, IRR, Cap Rate, and Equity Multiple",
            "Include financing structure and terms if available",
            "Present a balanced assessment of the financial opportunity",
        ],
    ),
    (
        ("risk",),
        [
            "Provide a comprehensive yet balanced assessment of risk factors",
            "Include market risks, property-specific risks, and financial risks",
            "For each risk, suggest mitigation strategies",
            "Present risks professionally without undermining investment appeal",
        ],
    ),
    (
        ("strategy",),
        [
            "Detail the value-add or investment strategy clearly",
            "Include specific action items with projected timelines if available",
            "Explain how the strategy will maximize returns",
            "Include exit strategy considerations",
        ],
    ),
]

ENHANCEMENT_GUIDANCE: list[tuple[tuple[str, ...], list[str]]] = [
    (
        ("executive", "summary"),
        [
            "Ensure the executive summary is concise yet comprehensive",
            "Highlight the most compelling aspects of the investment",
            "Check that key financial metrics are included",
            "Ensure the tone is confident and persuasive",
        ],
    ),
    (
        ("financial", "returns"),
        [
            "Verify that financial discussions are precise and backed by data",
            "Ensure projections are presented with appropriate caveats",
            "Check for logical consistency in financial arguments",
            "Make sure key metrics like IRR, cap rate, and cash-on-cash return are clearly explained",
        ],
    ),
    (
        ("risk",),
        [
            "Ensure risks are presented honestly but not overstated",
            "Check that each risk is accompanied by mitigation strategies",
            "Balance the discussion of risks with opportunity context",
            "Verify the tone remains professional and not alarmist",
        ],
    ),
    (
        ("market", "location"),
        [
            "Enhance market analysis with specific data points where possible",
            "Ensure demographic trends are clearly articulated",
            "Check that competitive positioning is well established",
            "Verify that market advantages are substantiated with evidence",
        ],
    ),
]

# One entry per SectionKind; the prompt tells the model what shape of content the template expects.
SECTION_KIND_HINTS: dict[SectionKind, str] = {
    SectionKind.HEADING: "heading only, write a short framing introduction",
    SectionKind.TEXT: "narrative prose",
    SectionKind.TABLE: "tabular data, answer with a markdown table followed by a short commentary",
    SectionKind.CHART: "chart, describe the data series and the insight the chart should convey",
    SectionKind.IMAGE: "image, write a caption and describe what the imagery should show",
}


def _select(table: list[tuple[tuple[str, ...], list[str]]], title: str) -> list[str]:
    lowered = title.lower()
    for keywords, guidance in table:
        if any(keyword in lowered for keyword in keywords):
            return guidance
    return []


def generation_guidance_for(title: str) -> list[str]:
    return _select(GENERATION_GUIDANCE, title)


def enhancement_guidance_for(title: str) -> list[str]:
    return _select(ENHANCEMENT_GUIDANCE, title)
