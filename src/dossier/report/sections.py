"""The fixed, ordered list of report sections."""

from pydantic import BaseModel, Field


class ReportSection(BaseModel):
    id: str
    title: str
    keywords: list[str] = Field(default_factory=list)
    template: str
    required: bool = True


REPORT_SECTIONS: list[ReportSection] = [
    ReportSection(
        id="cover",
        title="Cover page",
        keywords=["title", "client", "consultant", "date"],
        template="""# {{title}}

**Client:** {{client}}
**Consultant:** {{lead}}
**Date:** {{date}}
**Language:** {{language}}""",
    ),
    ReportSection(
        id="toc",
        title="Table of contents",
        keywords=[],
        template="""# Table of contents

{{tableOfContents}}""",
    ),
    ReportSection(
        id="executive-summary",
        title="Executive summary",
        keywords=["summary", "synthesis", "stakes", "recommendations"],
        template="""# Executive summary

## Context and stakes
{{context}}

## Main recommendations
{{recommendations}}

## Key points
{{keyPoints}}""",
    ),
    ReportSection(
        id="context",
        title="Context and stakes",
        keywords=["context", "stakes", "problem", "current situation"],
        template="""# Context and stakes

## Current situation
{{currentSituation}}

## Identified challenges
{{challenges}}

## Objectives
{{objectives}}""",
    ),
    ReportSection(
        id="audit",
        title="Audit findings",
        keywords=["audit", "findings", "analysis", "diagnostic"],
        template="""# Audit findings

## Methodology
{{methodology}}

## Technical findings
{{technicalFindings}}

## Organisational findings
{{organizationalFindings}}

## Areas for improvement
{{improvements}}""",
    ),
    ReportSection(
        id="benchmark",
        title="Benchmark and gaps",
        keywords=["benchmark", "comparison", "gaps", "best practices"],
        template="""# Benchmark and gaps

## Frameworks reviewed
{{benchmarks}}

## Identified gaps
{{gaps}}

## Best practices
{{bestPractices}}""",
    ),
    ReportSection(
        id="vision",
        title="Vision and positioning",
        keywords=["vision", "strategy", "positioning", "business model"],
        template="""# Vision and positioning

## Strategic vision
{{vision}}

## Business model canvas
{{businessModel}}

## Value proposition canvas
{{valueProposition}}""",
    ),
    ReportSection(
        id="architecture",
        title="Target architecture",
        keywords=["architecture", "technical", "system", "infrastructure"],
        template="""# Target architecture

## Overview (C4 context)
{{c4Context}}

## Application architecture (C4 containers)
{{c4Containers}}

## Technical architecture (C4 components)
{{c4Components}}

## Non-functional requirements
{{nfr}}""",
    ),
    ReportSection(
        id="processes",
        title="Processes",
        keywords=["process", "workflow", "procedures", "BPMN"],
        template="""# Processes

## Process map
{{processMap}}

## Business processes (BPMN)
{{bpmnDiagrams}}

## Proposed optimisations
{{optimizations}}""",
    ),
    ReportSection(
        id="security",
        title="Security and compliance",
        keywords=["security", "compliance", "GDPR", "OWASP", "ISO27001"],
        template="""# Security and compliance

## Security framework (OWASP)
{{owaspFramework}}

## Data protection compliance
{{gdprCompliance}}

## Threat analysis (STRIDE)
{{strideAnalysis}}

## Security measures
{{securityMeasures}}""",
    ),
    ReportSection(
        id="roadmap",
        title="Roadmap",
        keywords=["roadmap", "planning", "phases", "milestones"],
        template="""# Roadmap (18-24 months)

## Prioritisation (RICE)
{{riceAnalysis}}

## Planning (Gantt)
{{ganttChart}}

## Phases and milestones
{{phases}}""",
    ),
    ReportSection(
        id="budget",
        title="Budget and FinOps",
        keywords=["budget", "costs", "finops", "ROI"],
        template="""# Budget and FinOps

## Budget estimate
{{budgetEstimate}}

## CAPEX/OPEX split
{{capexOpex}}

## Unit economics
{{unitEconomics}}

## ROI and financial metrics
{{roi}}""",
    ),
    ReportSection(
        id="governance",
        title="Governance",
        keywords=["governance", "organisation", "RACI", "roles"],
        template="""# Governance

## Organisational structure
{{orgStructure}}

## RACI matrix
{{raciMatrix}}

## Decision process
{{decisionProcess}}""",
    ),
    ReportSection(
        id="kpis",
        title="KPI / SLI-SLO",
        keywords=["KPI", "metrics", "SLI", "SLO", "monitoring"],
        template="""# KPI / SLI-SLO

## Balanced scorecard
{{balancedScorecard}}

## SLI/SLO (SRE)
{{sreMetrics}}

## Dashboards
{{dashboards}}""",
    ),
    ReportSection(
        id="risks",
        title="Risks",
        keywords=["risks", "FAIR", "mitigation", "contingency"],
        template="""# Risks

## FAIR analysis
{{fairAnalysis}}

## Risk matrix
{{riskMatrix}}

## Mitigation plans
{{mitigationPlans}}""",
    ),
    ReportSection(
        id="conclusion",
        title="Conclusion and call to decision",
        keywords=["conclusion", "recommendations", "decision", "next steps"],
        template="""# Conclusion and call to decision

## Summary of recommendations
{{recommendations}}

## Next steps
{{nextSteps}}

## Call to decision
{{callToAction}}""",
    ),
    ReportSection(
        id="annexes",
        title="Annexes",
        keywords=["annexes", "diagrams", "tables", "checklists"],
        template="""# Annexes

## Technical diagrams
{{diagrams}}

## Data tables
{{dataTables}}

## Compliance checklists
{{checklists}}""",
    ),
]


# Static text for placeholders that are not derived from the project
SECTION_PLACEHOLDERS = {
    "recommendations": "Recommendations based on the analysis of the supplied documents.",
    "keyPoints": "Key points identified during the audit.",
    "currentSituation": "Current situation as described in the documents.",
    "challenges": "Identified challenges.",
    "objectives": "Objectives of the transformation project.",
    "methodology": "Audit methodology applied.",
    "technicalFindings": "Technical findings.",
    "organizationalFindings": "Organisational findings.",
    "improvements": "Identified areas for improvement.",
    "benchmarks": "Frameworks and best practices reviewed.",
    "gaps": "Gaps against the reference standards.",
    "bestPractices": "Recommended best practices.",
    "vision": "Strategic vision of the project.",
    "businessModel": "Proposed business model.",
    "valueProposition": "Value proposition.",
    "c4Context": "Context architecture (C4).",
    "c4Containers": "Container architecture (C4).",
    "c4Components": "Component architecture (C4).",
    "nfr": "Non-functional requirements.",
    "processMap": "Process map.",
    "bpmnDiagrams": "Business process diagrams.",
    "optimizations": "Proposed optimisations.",
    "owaspFramework": "OWASP security framework.",
    "gdprCompliance": "Data protection compliance.",
    "strideAnalysis": "STRIDE threat analysis.",
    "securityMeasures": "Recommended security measures.",
    "riceAnalysis": "RICE prioritisation analysis.",
    "ganttChart": "Project plan (Gantt).",
    "phases": "Project phases and milestones.",
    "budgetEstimate": "Budget estimate.",
    "capexOpex": "CAPEX/OPEX split.",
    "unitEconomics": "Unit economics.",
    "roi": "Return on investment.",
    "orgStructure": "Organisational structure.",
    "raciMatrix": "RACI matrix.",
    "decisionProcess": "Decision process.",
    "balancedScorecard": "Balanced scorecard.",
    "sreMetrics": "SRE metrics (SLI/SLO).",
    "dashboards": "Dashboards.",
    "fairAnalysis": "FAIR risk analysis.",
    "riskMatrix": "Risk matrix.",
    "mitigationPlans": "Mitigation plans.",
    "nextSteps": "Next steps.",
    "callToAction": "Call to decision.",
    "checklists": "Compliance checklists.",
}


def get_section(section_id: str) -> ReportSection:
    for section in REPORT_SECTIONS:
        if section.id == section_id:
            return section
    raise KeyError(section_id)
