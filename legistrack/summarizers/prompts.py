"""Prompt templates for bill analysis, podcast overviews, chat and comparison."""

import json
from typing import Any, Optional

ANALYST_SYSTEM = (
    "You are an expert legislative analyst with deep knowledge of the U.S. Congress "
    "and legislative process."
)
POLICY_ANALYST_SYSTEM = (
    "You are an expert legislative analyst with deep knowledge of U.S. legislation, "
    "policy, and political context."
)
PODCAST_SYSTEM = "You are a concise and engaging podcast host."
CHAT_SYSTEM = "You are an expert legislative assistant who helps users understand bills in Congress."
ASSISTANT_SYSTEM = "You are an expert legislative assistant."
TAGGING_SYSTEM = "You are an expert legislative analyst specializing in categorizing bills by subject matter."

JSON_ONLY = "IMPORTANT: Ensure your response is ONLY the JSON object with no additional text before or after."

DEFAULT_FOLLOW_UP_QUESTIONS = [
    "What are the key provisions of this bill?",
    "Who sponsored this bill?",
    "What's the current status of this bill?",
    "How likely is this bill to pass?",
    "How would this bill affect me?",
]

# Full-text excerpt limits per prompt
ANALYSIS_TEXT_LIMIT = 10000
COMPREHENSIVE_TEXT_LIMIT = 8000
CHAT_TEXT_LIMIT = 5000
IMPACT_TEXT_LIMIT = 5000
FOLLOW_UP_TEXT_LIMIT = 1000
COMPARISON_TEXT_LIMIT = 1000
SHORT_SUMMARY_LIMIT = 500
TAGGING_TEXT_LIMIT = 5000


def excerpt(text: Optional[str], limit: int, marker: str = "... [text truncated]") -> str:
    """Return at most ``limit`` characters of ``text`` with a truncation marker."""
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return text[:limit] + marker


def _sponsor_labels(bill) -> list[str]:
    return [
        f"{s.get('full_name')} ({s.get('party')}-{s.get('state')})"
        for s in (bill.sponsors or [])
    ]


def bill_context(bill, summary_limit: Optional[int] = None, include_analysis: bool = False,
                 include_sponsors: bool = True) -> dict[str, Any]:
    """Bill fields sent to the model."""
    summary = bill.summary or "No summary available"
    if summary_limit and bill.summary:
        summary = bill.summary[:summary_limit]

    data = {
        "id": bill.id,
        "congress": bill.congress,
        "bill_type": bill.bill_type,
        "number": bill.number,
        "title": bill.title,
        "shortTitle": bill.short_title,
        "summary": summary,
        "subjects": bill.subjects or [],
        "policyArea": bill.policy_area,
        "status": bill.status,
        "introducedDate": bill.introduced_date.isoformat() if bill.introduced_date else None,
        "latestAction": bill.latest_action_text,
    }
    if include_sponsors:
        data["sponsors"] = _sponsor_labels(bill)
    if include_analysis:
        data["aiAnalysis"] = bill.ai_analysis
    return data


def _dump(data) -> str:
    return json.dumps(data, indent=2, default=str)


def _text_section(bill, limit: int) -> str:
    text = excerpt(bill.full_text_content, limit)
    return f"BILL FULL TEXT EXCERPT:\n{text}" if text else ""


def user_context_data(user_context: Optional[dict]) -> Optional[dict]:
    if not user_context:
        return None
    return {
        "location": user_context.get("location") or {},
        "interests": user_context.get("interests") or [],
        "demographics": user_context.get("demographics") or {},
    }


def bill_analysis_prompt(bill, user_context: Optional[dict] = None) -> str:
    context = user_context_data(user_context)
    user_section = f"USER CONTEXT:\n{_dump(context)}" if context else ""

    return f"""
Analyze the following bill and provide a comprehensive analysis in JSON format:

BILL DATA:
{_dump(bill_context(bill))}

{_text_section(bill, ANALYSIS_TEXT_LIMIT)}

{user_section}

Your analysis should include:
1. A plain English summary (5-10 sentences)
2. Key provisions (5-7 bullet points)
3. Impact assessment (economic, social, regional, demographic)
4. Passage prediction (probability as decimal 0-1, reasoning, key factors, timeline)

Format your response as a valid JSON object with the following structure:
{{
  "summary": "Plain English summary here...",
  "keyProvisions": ["Provision 1", "Provision 2", "Provision 3"],
  "impactAssessment": {{
    "economic": "Economic impact analysis...",
    "social": "Social impact analysis...",
    "regional": "Regional impact analysis...",
    "demographic": "Demographic impact analysis..."
  }},
  "passagePrediction": {{
    "probability": 0.65,
    "reasoning": "Reasoning for prediction...",
    "keyFactors": ["Factor 1", "Factor 2", "Factor 3"],
    "timeline": "Expected timeline..."
  }}
}}

{JSON_ONLY}
"""


def comprehensive_analysis_prompt(bill) -> str:
    return f"""
You are an expert legislative analyst with deep knowledge of U.S. legislation, policy, and political context. Create a comprehensive analysis of this bill that would be valuable for citizens trying to understand its significance:

BILL DATA:
{_dump(bill_context(bill, include_analysis=True))}

{_text_section(bill, COMPREHENSIVE_TEXT_LIMIT)}

Provide a detailed analytical summary that includes:

1. Executive Summary: A clear, concise overview of the bill's purpose and significance (2-3 paragraphs)
2. Historical Context: How this bill relates to previous legislation or ongoing policy discussions
3. Key Provisions Analysis: Detailed breakdown of the most important sections with their implications
4. Stakeholder Impact: How this bill would affect different groups (citizens, businesses, government agencies)
5. Political Landscape: Current support/opposition and factors affecting passage
6. Implementation Analysis: How and when the bill would be implemented if passed
7. Expert Perspectives: What policy experts and relevant organizations are saying about this bill
8. Potential Outcomes: Best and worst case scenarios if the bill passes or fails

Format your response as a valid JSON object with the following structure:
{{
  "executiveSummary": "Comprehensive overview of the bill...",
  "historicalContext": "Analysis of how this bill fits into legislative history...",
  "keyProvisions": [
    {{"title": "Provision Title", "description": "Detailed explanation...", "significance": "Why this provision matters..."}}
  ],
  "stakeholderImpact": {{
    "citizens": "How this affects individual citizens...",
    "businesses": "Impact on businesses and industry...",
    "government": "Effects on government agencies and operations..."
  }},
  "politicalLandscape": {{
    "support": ["Supporting group 1", "Supporting group 2"],
    "opposition": ["Opposing group 1", "Opposing group 2"],
    "keyFactors": ["Factor affecting passage 1", "Factor affecting passage 2"]
  }},
  "implementationAnalysis": {{
    "timeline": "Expected implementation timeline...",
    "challenges": ["Challenge 1", "Challenge 2"],
    "agencies": ["Agency 1", "Agency 2"]
  }},
  "expertPerspectives": [
    {{"perspective": "Expert perspective...", "source": "Source or type of expert"}}
  ],
  "potentialOutcomes": {{
    "ifPassed": "Outcomes if the bill passes...",
    "ifFailed": "Outcomes if the bill fails...",
    "alternativeScenarios": "Other possible legislative paths..."
  }}
}}

{JSON_ONLY}
"""


def _joined(items, default: str = "Not specified") -> str:
    return ", ".join(str(i) for i in items) if items else default


def podcast_overview_prompt(analysis: dict, fallback_summary: Optional[str] = None) -> str:
    """Build the podcast prompt from the sections of a comprehensive analysis."""
    executive_summary = analysis.get("executiveSummary") or fallback_summary or "No summary available."

    provisions = analysis.get("keyProvisions") or []
    key_provisions = "; ".join(
        (p.get("title") or p.get("description") or "") if isinstance(p, dict) else str(p)
        for p in provisions
    ) or "No key provisions available."

    outcomes = analysis.get("potentialOutcomes") or {}
    potential_outcomes = outcomes.get("ifPassed") or "Potential outcomes not detailed."

    landscape = analysis.get("politicalLandscape")
    if landscape:
        political_landscape = (
            f"Support: {_joined(landscape.get('support'))}. "
            f"Opposition: {_joined(landscape.get('opposition'))}. "
            f"Key Factors: {_joined(landscape.get('keyFactors'))}."
        )
    else:
        political_landscape = "Political landscape not detailed."

    impact = analysis.get("stakeholderImpact")
    if impact:
        stakeholder_impact = (
            f"Citizens: {impact.get('citizens') or 'Not specified'}. "
            f"Businesses: {impact.get('businesses') or 'Not specified'}. "
            f"Government: {impact.get('government') or 'Not specified'}."
        )
    else:
        stakeholder_impact = "Stakeholder impact not detailed."

    implementation = analysis.get("implementationAnalysis")
    if implementation:
        implementation_analysis = (
            f"Timeline: {implementation.get('timeline') or 'Not specified'}. "
            f"Challenges: {_joined(implementation.get('challenges'))}. "
            f"Agencies: {_joined(implementation.get('agencies'))}."
        )
    else:
        implementation_analysis = "Implementation analysis not detailed."

    return f"""
You are a podcast host creating a comprehensive overview for an episode about a new legislative bill.
Your goal is to make the bill sound engaging and easy to understand for a general audience while providing substantive analysis.

Here is the comprehensive analysis of the bill:
Executive Summary: {executive_summary}

Key Provisions: {key_provisions}

Political Landscape: {political_landscape}

Stakeholder Impact: {stakeholder_impact}

Implementation Analysis: {implementation_analysis}

Potential Outcomes (if passed): {potential_outcomes}

Create an engaging, informative podcast overview (around 300-450 words, suitable for a 2-3 minute segment).
Structure your overview to include:
1. An attention-grabbing introduction to the bill and its significance
2. A clear explanation of the bill's core purpose and key provisions
3. Analysis of the political landscape and likelihood of passage
4. Discussion of stakeholder impacts (citizens, businesses, government)
5. Implementation timeline and challenges
6. Potential outcomes and broader implications

Use a conversational, engaging tone appropriate for audio. Avoid complex jargon and explain technical terms.
Do not include a call to action or ask questions. Just provide the overview as if you're speaking to listeners.
"""


def full_text_summary_prompt(bill) -> str:
    short_title = f"Short Title: {bill.short_title}" if bill.short_title else ""
    return f"""
You are an expert legislative analyst. I need you to create a comprehensive summary of the full text of this bill:

Bill: {bill.bill_type.upper()} {bill.number} ({bill.congress}th Congress)
Title: {bill.title}
{short_title}

Please create a detailed summary that covers:
1. The main purpose and objectives of the bill
2. Key provisions and sections
3. Any notable amendments or changes
4. Technical details that would be important for understanding the bill

Your summary should be thorough but accessible to an educated general audience.
Aim for 3-5 paragraphs that capture the essence of the bill's full text.
"""


def chat_prompt(question: str, bill) -> str:
    return f"""
BILL CONTEXT:
{_dump(bill_context(bill, include_analysis=True))}

{_text_section(bill, CHAT_TEXT_LIMIT)}

USER QUESTION:
{question}

Please provide a helpful, accurate, and concise response to the user's question about this bill.
Focus on answering exactly what was asked, using the bill information provided.
If you don't know the answer, say so honestly rather than making up information.
Use plain, accessible language that a general audience can understand.
"""


def follow_up_questions_prompt(bill) -> str:
    return f"""
You are an expert legislative assistant. Generate 5 relevant follow-up questions that a user might want to ask about this bill:

BILL DATA:
{_dump(bill_context(bill, summary_limit=SHORT_SUMMARY_LIMIT))}

{_text_section(bill, FOLLOW_UP_TEXT_LIMIT)}

Generate 5 specific, relevant follow-up questions that would help a user better understand this bill.
Format your response as a JSON array of strings, with no additional text.
Example: ["Question 1?", "Question 2?", "Question 3?", "Question 4?", "Question 5?"]
"""


def personalized_impact_prompt(bill, user_profile: dict) -> str:
    return f"""
You are an expert legislative analyst. Generate a personalized impact assessment for how this bill might affect this specific user:

BILL DATA:
{_dump(bill_context(bill, include_analysis=True, include_sponsors=False))}

{_text_section(bill, IMPACT_TEXT_LIMIT)}

USER PROFILE:
{_dump(user_profile)}

Generate a personalized impact assessment that explains how this bill might specifically affect this user based on their location, demographics, and interests.

Format your response as a JSON object with the following structure:
{{
  "personalImpact": "Detailed explanation of how this bill might affect this specific user...",
  "relevanceScore": 85,
  "keyPoints": ["Point 1", "Point 2", "Point 3"],
  "recommendedAction": "Suggested action the user might want to take..."
}}

relevanceScore is 0-100 and indicates how relevant this bill is to the user. Give 2-3 keyPoints.

{JSON_ONLY}
"""


def comparison_prompt(bills: list) -> str:
    bills_data = []
    for bill in bills:
        data = bill_context(bill, summary_limit=SHORT_SUMMARY_LIMIT)
        data["fullTextExcerpt"] = (
            excerpt(bill.full_text_content, COMPARISON_TEXT_LIMIT, marker="...")
            if bill.full_text_content else None
        )
        bills_data.append(data)

    return f"""
You are an expert legislative analyst. Compare the following bills and provide a comprehensive analysis of their similarities, differences, and relative merits:

BILLS TO COMPARE:
{_dump(bills_data)}

Generate a detailed comparison that highlights key similarities and differences between these bills, their approaches to the issue, and their relative strengths and weaknesses.

Format your response as a JSON object with the following structure:
{{
  "commonGoal": "Description of what these bills are trying to achieve...",
  "keyDifferences": ["Difference 1...", "Difference 2...", "Difference 3..."],
  "approachComparison": {{
    "bill1": "Analysis of first bill's approach...",
    "bill2": "Analysis of second bill's approach..."
  }},
  "strengthsAndWeaknesses": {{
    "bill1": {{"strengths": ["Strength 1"], "weaknesses": ["Weakness 1"]}},
    "bill2": {{"strengths": ["Strength 1"], "weaknesses": ["Weakness 1"]}}
  }},
  "recommendation": "Overall assessment of which bill might be more effective and why..."
}}

{JSON_ONLY}
"""


def tagging_prompt(bill, subjects: list[dict], max_tags: int = 10, min_confidence: int = 50) -> str:
    bill_data = {
        "id": bill.id,
        "title": bill.title,
        "short_title": bill.short_title,
        "summary": bill.summary,
        "policy_area": bill.policy_area,
        "subjects": bill.subjects or [],
        "full_text_excerpt": (bill.full_text_content or "")[:TAGGING_TEXT_LIMIT] or None,
    }
    taxonomy = [{"id": s["id"], "name": s["name"], "type": s["type"]} for s in subjects]
    return f"""
You are an expert legislative analyst. Your task is to analyze this bill and identify the most relevant subjects from the provided taxonomy.

BILL DATA:
{_dump(bill_data)}

AVAILABLE SUBJECTS:
{_dump(taxonomy)}

For each subject that is relevant to this bill, assign a confidence score (0-100) indicating how strongly the bill relates to that subject.

INSTRUCTIONS:
1. Analyze the bill's title, summary, and any available text
2. Compare the bill's content against the provided subject taxonomy
3. Only include subjects with meaningful relevance (don't force matches)
4. Consider both policy areas and legislative subjects
5. If the bill already has subjects or a policy area, prioritize those but don't limit yourself to them

FORMAT YOUR RESPONSE AS A JSON ARRAY with the following structure:
[
  {{"subject_id": "policy-health", "name": "Health", "confidence_score": 85}},
  {{"subject_id": "medicare", "name": "Medicare", "confidence_score": 75}}
]

IMPORTANT:
- Return ONLY the JSON array with no additional text
- Include the subject_id exactly as provided in the available subjects list
- Ensure confidence scores are integers between 0 and 100
- Only include subjects with a confidence score of {min_confidence} or higher
- Limit your response to the {max_tags} most relevant subjects maximum
"""
