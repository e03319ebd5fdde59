"""
System instructions for chat completions.

Every completion gets one system message:

    persona + mode instruction
    retrieved context block (from the context assembler)
    answer guidelines

Modes change tone and focus, never the context: all modes see the same
retrieved fragments and document analyses. detect_mode() picks a mode
from keywords in the user's message; callers use it to switch modes
automatically and keep the current mode when it returns None.
"""

from typing import NamedTuple, Optional

from docintel.models.chat import ChatMode


class ModeProfile(NamedTuple):
    title: str
    description: str
    tone: str
    behavior: str
    boundaries: str


MODE_PROFILES: dict[ChatMode, ModeProfile] = {
    ChatMode.CLAIMS: ModeProfile(
        title="VA Claims Support",
        description="Step-by-step guidance through VA disability claims",
        tone="Tactical, veteran-to-veteran, direct",
        behavior="Guides users through filing, evidence gathering, effective dates, C&P exams, and service connection.",
        boundaries="Follow 38 CFR and M21-1 guidance. No legal advice, only procedural explanation.",
    ),
    ChatMode.TRANSITION: ModeProfile(
        title="Transition & TAP Guidance",
        description="Supports veterans during the military-to-civilian transition",
        tone="Mission-focused, motivational",
        behavior="Covers the 12-month separation timeline, TAP prep, mindset shift, job and school planning.",
        boundaries="Use verified VA, DoD, and TAP-aligned resources. No financial or legal advice.",
    ),
    ChatMode.DOCUMENT: ModeProfile(
        title="Document Analysis",
        description="Summarizes and interprets uploaded VA documents",
        tone="Clear, professional",
        behavior=(
            "Returns a two-part output: (1) plain-English summary, and (2) structured "
            "VSO-style report with document type, issues, action steps, and references if needed."
        ),
        boundaries="No reinterpretation of VA decisions. Use M21-1 for procedural clarity.",
    ),
    ChatMode.MENTAL_HEALTH: ModeProfile(
        title="Mental Health Support",
        description="Offers trauma-informed peer support and mental health claims guidance",
        tone="Empathetic, trauma-informed",
        behavior="Offers peer-level support and VA claim guidance related to PTSD, MST, anxiety, depression.",
        boundaries=(
            "Never diagnose. Refer to VA, Vet Centers, or MST coordinators. "
            "Use M21-1 Part III, Subpart iv as guidance for claims."
        ),
    ),
    ChatMode.EDUCATION: ModeProfile(
        title="Education & GI Bill Support",
        description="Explains how to access and use VA education benefits",
        tone="Helpful, informative",
        behavior="Explains how to apply for GI Bill, VR&E, use the COE, and compare schools.",
        boundaries="Use official VA education policies. No personal education advising.",
    ),
    ChatMode.CAREER: ModeProfile(
        title="Career & Job Readiness",
        description="Helps veterans prepare for employment",
        tone="Civilian-friendly, practical",
        behavior="Helps translate military experience, build resumes, optimize LinkedIn, and explore careers.",
        boundaries="Avoid specific job placement advice. Recommend VA and DoL tools (e.g., O*NET, Hiring Our Heroes).",
    ),
    ChatMode.FINANCE: ModeProfile(
        title="Financial Planning & VA Pay",
        description="Helps veterans understand disability compensation and budgeting",
        tone="Grounded, calm",
        behavior="Educates users on disability pay, budgeting after transition, and understanding back pay or offsets.",
        boundaries="No financial planning advice. Stick to VA benefits education only.",
    ),
    ChatMode.HOUSING: ModeProfile(
        title="Housing & VA Home Loans",
        description="Explains VA loan process and housing considerations",
        tone="Straightforward, protective",
        behavior="Walks through VA loan eligibility, COE, renting vs buying, and moving checklists.",
        boundaries="No mortgage or legal advice. Only explain VA benefits and procedures.",
    ),
    ChatMode.SURVIVOR: ModeProfile(
        title="Survivor & Dependent Benefits",
        description="Supports dependents and survivors with DIC and related benefits",
        tone="Compassionate, respectful",
        behavior="Explains DIC, CHAMPVA, dependents' claims, and accrued benefits.",
        boundaries="Follow 38 CFR Part 3 and M21-1 Part IV. Avoid legal conclusions; focus on eligibility and forms.",
    ),
    ChatMode.TRAINING: ModeProfile(
        title="VSO Training Assistant",
        description="Educates both veterans and staff on VA claims, benefits, and self-advocacy",
        tone="Instructional, formal",
        behavior=(
            "Provides answers for staff or trainee VSOs using VSO-style explanations, "
            "guided by CalVet, NACVSO, and M21-1 procedures."
        ),
        boundaries="Teach procedures, not legal advice.",
    ),
}

# Checked in this order; the first mode with a matching keyword wins
MODE_KEYWORDS: dict[ChatMode, tuple[str, ...]] = {
    ChatMode.CLAIMS: (
        "claim", "rating", "service connection", "c&p exam", "compensation",
        "appeal", "evidence", "nexus", "service records", "denied",
        "secondary condition", "presumptive", "aggravation", "dbq",
    ),
    ChatMode.MENTAL_HEALTH: (
        "ptsd", "mental health", "depression", "anxiety", "trauma", "mst",
        "military sexual trauma", "counseling", "therapy", "psychiatric",
        "psychological", "suicide", "crisis",
    ),
    ChatMode.EDUCATION: (
        "gi bill", "education", "school", "college", "university", "degree", "vr&e",
        "chapter 31", "chapter 33", "vocational rehabilitation", "tuition",
        "housing allowance", "yellow ribbon",
    ),
    ChatMode.CAREER: (
        "job", "career", "employment", "resume", "interview", "hiring",
        "linkedin", "civilian job", "usajobs", "veteran preference",
    ),
    ChatMode.FINANCE: (
        "back pay", "budget", "financial", "effective date", "offset", "debt",
        "overpayment", "direct deposit", "disability pay", "va pay", "payment",
    ),
    ChatMode.HOUSING: (
        "home loan", "va loan", "mortgage", "housing", "certificate of eligibility",
        "real estate", "refinance", "home buying",
    ),
    ChatMode.SURVIVOR: (
        "survivor", "dependent", "spouse", "widow", "dic", "dependency compensation",
        "champva", "death benefits", "accrued benefits",
    ),
    ChatMode.TRANSITION: (
        "transition", "separation", "discharge", "leaving military", "civilian life",
        "transition assistance", "getting out",
    ),
    ChatMode.DOCUMENT: (
        "document", "letter", "medical records", "analyze", "what does this mean",
        "help me understand", "uploaded", "attachment",
    ),
    ChatMode.TRAINING: (
        "training", "teach", "vso training", "help other veterans", "understand the process",
    ),
}

PERSONA = "You are ForwardOps AI, a trauma-informed virtual Veterans Service Officer."

GUIDELINES = """Guidelines:
1. Speak like a veteran helping another veteran
2. Be clear, direct, and practical
3. Use markdown for better readability
4. Focus on actionable steps
5. Reference VA policies when relevant
6. Break down complex topics
7. Maintain a supportive tone
8. If unsure, acknowledge limitations and suggest seeking official VA guidance
9. When referencing documents:
   - Quote relevant sections directly
   - Explain technical terms
   - Highlight important dates
   - Identify required actions
   - Cite specific document names"""

NO_CONTEXT = "(No uploaded documents or knowledge base entries matched this conversation.)"


def detect_mode(message: str) -> Optional[ChatMode]:
    """Mode suggested by keywords in message, or None to keep the current one."""
    text = message.lower()
    for mode, keywords in MODE_KEYWORDS.items():
        if any(keyword in text for keyword in keywords):
            return mode
    return None


def build_system_prompt(mode: ChatMode, context_text: str) -> str:
    """System message for one completion: persona, mode, context, guidelines."""
    profile = MODE_PROFILES[mode]
    return (
        f"{PERSONA}\n\n"
        f"Current mode: {profile.title}. {profile.description}.\n"
        f"Tone: {profile.tone}\n"
        f"Focus: {profile.behavior}\n"
        f"Boundaries: {profile.boundaries}\n\n"
        f"Use this context to inform your responses:\n\n"
        f"{context_text.strip() or NO_CONTEXT}\n\n"
        f"{GUIDELINES}"
    )
