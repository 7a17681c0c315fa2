"""Builds the section forest of a markdown memorandum template.

Only ``#``, ``##`` and ``###`` headings open sections. Everything else that is
not blank is body text of the deepest open section.
"""

from __future__ import annotations

import logging

from memogen.models.memo_models import Template
from memogen.models.memo_models import TemplateSection
from memogen.models.memo_models import TemplateStructure

logger = logging.getLogger(__name__)


def parse_template_content(content: str) -> TemplateStructure:
    sections: list[TemplateSection] = []
    current: TemplateSection | None = None
    current_sub: TemplateSection | None = None

    for raw_line in content.split("\n"):
        line = raw_line.strip()
        if not line:
            continue

        if line.startswith("# "):
            current = TemplateSection(title=line[2:].strip(), level=1)
            current_sub = None
            sections.append(current)
        elif line.startswith("## "):
            # A level-2 heading before any level-1 heading has no parent and is dropped
            if current is not None:
                current_sub = TemplateSection(title=line[3:].strip(), level=2)
                current.children.append(current_sub)
        elif line.startswith("### "):
            node = TemplateSection(title=line[4:].strip(), level=3)
            if current_sub is not None:
                current_sub.children.append(node)
            elif current is not None:
                current.children.append(node)
        elif current_sub is not None:
            current_sub.append_body(line)
        elif current is not None:
            current.append_body(line)

    logger.debug("Parsed template into %d top-level sections", len(sections))
    return TemplateStructure(sections=sections)


def build_template(name: str, content: str, content_type: str = "text/markdown") -> Template:
    return Template(
        name=name,
        content_type=content_type,
        content=content,
        size=len(content.encode("utf-8")),
        structure=parse_template_content(content),
    )


SAMPLE_TEMPLATE = """# Investment Memorandum Template

## Executive Summary
This section provides a brief overview of the investment opportunity, highlighting key aspects of the property, the market, and the expected returns.

## Property Overview
### Location & Description
Detailed description of the property location, specifications, and notable features.

### Property Photos
Include relevant photographs of the property and surrounding area.

## Market Analysis
### Market Overview
Analysis of the local real estate market, including trends, comparable properties, and economic indicators.

### Competitive Landscape
Overview of competitive properties in the area and their positioning relative to the subject property.

## Investment Strategy
### Acquisition Strategy
The approach to acquiring the property, including pricing strategy and negotiation points.

### Value-Add Opportunities
Specific strategies to increase the property's value, such as renovations, repositioning, or operational improvements.

### Exit Strategy
The planned approach to eventually sell or refinance the property.

## Financial Analysis
### Purchase Information
Details of the purchase price, financing structure, and closing costs.

### Pro Forma Financial Statements
Projected income, expenses, and cash flows over the investment period.

### Investment Returns
Expected returns, including IRR, equity multiple, and cash-on-cash returns.

### Sensitivity Analysis
Analysis of how different scenarios might affect the investment returns.

## Risk Factors
Discussion of potential risks associated with the investment and mitigation strategies.

## Appendix
Additional supporting documents, market research, and detailed financial models.
"""


def generate_sample_template() -> Template:
    return build_template("Sample Investment Memorandum Template.md", SAMPLE_TEMPLATE)
