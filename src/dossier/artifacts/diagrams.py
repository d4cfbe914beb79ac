"""Mermaid diagram generators."""

import re
from datetime import timedelta

from dossier.artifacts.registry import DIAGRAMS
from dossier.models import Project


def _label(text: str) -> str:
    """Make text safe inside a Mermaid node label."""
    return re.sub(r'[\[\]{}()"|<>]', " ", text).strip() or "System"


@DIAGRAMS.register("c4-context", "Architecture - Context view (C4)")
def c4_context(context: str, project: Project) -> str:
    system = _label(project.title)
    client = _label(project.client)
    return f"""graph TB
    User[{client} users]
    System[{system}]
    ExtDB[(External database)]
    ExtAPI[External APIs]

    User -->|Uses| System
    System -->|Reads/Writes| ExtDB
    System -->|Integrates| ExtAPI

    classDef system fill:#e1f5fe
    classDef external fill:#fff3e0
    classDef user fill:#f3e5f5

    class System system
    class ExtDB,ExtAPI external
    class User user"""


@DIAGRAMS.register("c4-container", "Architecture - Container view (C4)")
def c4_container(context: str, project: Project) -> str:
    return """graph TB
    subgraph "Clients"
        WebApp[Web application]
        MobileApp[Mobile application]
    end

    subgraph "Backend services"
        API[API gateway]
        AuthService[Auth service]
        BusinessLogic[Business services]
    end

    subgraph "Data layer"
        Database[(Database)]
        Cache[(Cache)]
        FileStorage[(File storage)]
    end

    WebApp -->|HTTPS/REST| API
    MobileApp -->|HTTPS/REST| API
    API -->|Validates| AuthService
    API -->|Processes| BusinessLogic
    BusinessLogic -->|Stores| Database
    BusinessLogic -->|Caches| Cache
    BusinessLogic -->|Files| FileStorage

    classDef frontend fill:#e3f2fd
    classDef backend fill:#e8f5e8
    classDef data fill:#fff3e0

    class WebApp,MobileApp frontend
    class API,AuthService,BusinessLogic backend
    class Database,Cache,FileStorage data"""


@DIAGRAMS.register("bpmn", "Business process (BPMN)")
def bpmn(context: str, project: Project) -> str:
    return """graph LR
    Start([Start])
    Request[User request]
    Validation{Validation}
    Processing[Processing]
    Approval{Approval}
    Implementation[Implementation]
    Testing[Testing]
    Deployment[Deployment]
    End([End])

    Start --> Request
    Request --> Validation
    Validation -->|Valid| Processing
    Validation -->|Invalid| Request
    Processing --> Approval
    Approval -->|Approved| Implementation
    Approval -->|Rejected| Request
    Implementation --> Testing
    Testing -->|Pass| Deployment
    Testing -->|Fail| Implementation
    Deployment --> End

    classDef startEnd fill:#c8e6c9
    classDef process fill:#bbdefb
    classDef decision fill:#ffecb3

    class Start,End startEnd
    class Request,Processing,Implementation,Testing,Deployment process
    class Validation,Approval decision"""


# (section, task, id, start offset in days, duration in days)
GANTT_TASKS = [
    ("Phase 1 - Foundations", "Analysis and audit", "audit", 0, 45),
    ("Phase 1 - Foundations", "Technical architecture", "arch", 31, 29),
    ("Phase 1 - Foundations", "Infrastructure setup", "infra", 45, 29),
    ("Phase 2 - Build", "Core features", "core", 60, 61),
    ("Phase 2 - Build", "API development", "api", 74, 46),
    ("Phase 2 - Build", "Frontend development", "frontend", 91, 44),
    ("Phase 3 - Integration", "Integration testing", "integration", 121, 29),
    ("Phase 3 - Integration", "User acceptance testing", "uat", 135, 31),
    ("Phase 3 - Integration", "Security and compliance", "security", 150, 31),
    ("Phase 4 - Rollout", "Pilot deployment", "pilot", 166, 30),
    ("Phase 4 - Rollout", "User training", "training", 182, 29),
    ("Phase 4 - Rollout", "Production go-live", "golive", 196, 17),
]


@DIAGRAMS.register("gantt", "Project plan (Gantt)")
def gantt(context: str, project: Project) -> str:
    start = project.created_at.date()
    lines = [
        "gantt",
        f"    title Roadmap - {_label(project.title)}",
        "    dateFormat  YYYY-MM-DD",
    ]
    current_section = None
    for section, task, task_id, offset, duration in GANTT_TASKS:
        if section != current_section:
            lines.append(f"    section {section}")
            current_section = section
        begin = start + timedelta(days=offset)
        end = begin + timedelta(days=duration)
        lines.append(f"    {task} :{task_id}, {begin.isoformat()}, {end.isoformat()}")
    return "\n".join(lines)


@DIAGRAMS.register("stride", "Threat model (STRIDE)")
def stride(context: str, project: Project) -> str:
    return """graph TB
    subgraph "STRIDE threats"
        S[Spoofing]
        T[Tampering]
        R[Repudiation]
        I[Information disclosure]
        D[Denial of service]
        E[Elevation of privilege]
    end

    subgraph "Mitigations"
        Auth[Strong authentication: MFA, SSO]
        Integrity[Data integrity: hashing, signatures]
        Logging[Audit trails]
        Encryption[Encryption: TLS, AES]
        RateLimit[Rate limiting]
        RBAC[Access control: RBAC, least privilege]
    end

    S --> Auth
    T --> Integrity
    R --> Logging
    I --> Encryption
    D --> RateLimit
    E --> RBAC

    classDef threat fill:#ffcdd2
    classDef mitigation fill:#c8e6c9

    class S,T,R,I,D,E threat
    class Auth,Integrity,Logging,Encryption,RateLimit,RBAC mitigation"""


@DIAGRAMS.register("sequence", "Request flow (sequence)")
def sequence(context: str, project: Project) -> str:
    return """sequenceDiagram
    participant U as User
    participant F as Frontend
    participant A as API gateway
    participant S as Business service
    participant D as Database

    U->>F: Request
    F->>A: Authenticate
    A->>F: Token
    F->>A: Business request
    A->>S: Process
    S->>D: Read/Write
    D->>S: Data
    S->>A: Result
    A->>F: Response
    F->>U: Render"""
