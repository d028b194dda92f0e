"""Prompts for Saarthi's AI-generated messages.

Replies go out over WhatsApp to elderly users and their caregivers: short,
warm, plain language, emoji where it helps, never a diagnosis.
"""

from datetime import datetime
from typing import Any

from saarthi.models import CheckIn, Medication, SymptomAssessment, User

HEALTH_DISCLAIMER = (
    "\n\n⚠️ *Important*: This information is not a diagnosis. "
    "Always consult a healthcare provider for medical concerns."
)
FOLLOW_UP_DISCLAIMER = (
    "\n\n⚠️ *Disclaimer*: This information is not a substitute for professional medical "
    "advice. If symptoms are severe or concerning, please consult a healthcare provider."
)
MEDICATION_INFO_DISCLAIMER = (
    "\n\n⚠️ *Disclaimer*: This information is educational only and doesn't replace "
    "medical advice. Always consult your healthcare provider."
)

# Words in a free-form question that warrant the health disclaimer
SYMPTOM_WORDS = ("pain", "hurt", "ache", "symptom", "sick", "ill")


# =============================================================================
# General assistant
# =============================================================================

GENERAL_ASSISTANT_SYSTEM_PROMPT = """You are a friendly health assistant called Saarthi.
You can provide general health information but should not diagnose conditions or give specific medical advice.
Keep responses conversational, helpful, and concise for WhatsApp (under 400 words).
Use emoji where appropriate to make the conversation friendly."""


# =============================================================================
# Symptom assessment
# =============================================================================

SYMPTOM_QUESTION_SYSTEM_PROMPT = (
    "You are a clinical decision support assistant that provides medically sound "
    "questions to gather symptom information. You never diagnose conditions but help "
    "collect relevant information for symptom assessment."
)

FOLLOW_UP_SYSTEM_PROMPT = (
    "You are a healthcare assistant providing follow-up guidance for symptoms. Always be "
    "cautious, evidence-based, and clear about when professional medical care is needed "
    "versus self-care."
)


def format_symptom_history(primary_symptom: str, answers: list[dict[str, Any]]) -> str:
    lines = [f"Primary symptom: {primary_symptom}"]
    if answers:
        lines.append("Answers so far:")
        for i, qa in enumerate(answers, start=1):
            lines.append(f"Q{i}: {qa.get('question')}")
            lines.append(f"A{i}: {qa.get('answer')}")
    return "\n".join(lines)


def build_symptom_question_prompt(
    primary_symptom: str, answers: list[dict[str, Any]], question_number: int
) -> str:
    history = format_symptom_history(primary_symptom, answers)
    return f"""Based on the primary symptom and any previous answers, generate the most important follow-up question (question #{question_number}) to help assess this health concern.

{history}

This should be the most relevant clinical question to ask next. Provide:
1. A single, specific follow-up question that helps narrow down potential causes
2. 2-4 structured answer options (if applicable)

Focus on duration, characteristics, associated symptoms, or aggravating/relieving factors that would be most revealing for this specific symptom."""


def build_final_assessment_prompt(primary_symptom: str, answers: list[dict[str, Any]]) -> str:
    history = format_symptom_history(primary_symptom, answers)
    return f"""Based on the following symptom assessment, provide a concise, clear analysis of possible causes. Be direct and brief while remaining helpful. Include only the most relevant self-care tips and when to seek medical help.

{history}

Format your response with these sections, keeping each section brief:
- Possible explanations (2 most likely possibilities, 1-2 sentences each)
- Self-care tips (3-4 bullet points maximum)
- When to see a doctor (2-3 specific warning signs)
- Brief disclaimer

Use a reassuring tone, simple language, and avoid unnecessary details."""


def build_progression_prompt(assessment: SymptomAssessment, current_status: str) -> str:
    lines = [f"Primary symptom: {assessment.primary_symptom}"]
    if assessment.answers:
        lines.append("Initial assessment details:")
        for i, qa in enumerate(assessment.answers, start=1):
            lines.append(f"Q{i}: {qa.get('question')}")
            lines.append(f"A{i}: {qa.get('answer')}")

    lines.append("\nSymptom progression:")
    for day, follow_up in enumerate(assessment.follow_ups or [], start=1):
        lines.append(f"Day {day} ({str(follow_up.get('date', ''))[:10]}): {follow_up.get('status')}")
        if follow_up.get("notes"):
            lines.append(f"Notes: {follow_up['notes']}")
    lines.append(f"\nCurrent status: {current_status}")
    history = "\n".join(lines)

    return f"""Based on this symptom progression history, provide personalized recommendations for the next steps.

{history}

If symptoms are improving, provide supportive self-care advice.
If symptoms are the same after 2-3 days, suggest more specific self-care or when to consider contacting a healthcare provider.
If symptoms are worsening, provide clear guidance on when medical attention is needed versus continued self-care.
If the user wants to complete/end follow-ups, give a brief summary of their progression.

Format your response with appropriate headings, keep it concise, and focus on practical next steps."""


# =============================================================================
# Medication information
# =============================================================================

PHARMACIST_SYSTEM_PROMPT = (
    "You are a helpful pharmacist assistant providing medical information about "
    "medications in a clear, concise, and patient-friendly way. Only provide factual "
    "medical information without medical advice."
)


def build_medication_info_prompt(medication_name: str, dosage: str | None = None) -> str:
    subject = f"{medication_name} at a dosage of {dosage}" if dosage else medication_name
    return f"""Provide concise, patient-friendly information about {subject}.

Include the following details in your response:
1. What class of medication it is
2. Common uses/indications
3. How it works (mechanism in simple terms)
4. Common side effects (only most common 3-4)
5. Important warnings or precautions

Format the response as a WhatsApp message with emoji and clear headings. Keep it factual, concise, and educational."""


# =============================================================================
# Wellness check-ins
# =============================================================================

CHECK_IN_SYSTEM_PROMPT = (
    "You are a caring companion who checks in on elderly people. Your messages are warm, "
    "personal, varied, and conversational. You avoid sounding like an automated check-in "
    "service by being unpredictable and specific."
)
CHECK_IN_FOLLOW_UP_SYSTEM_PROMPT = (
    "You are a compassionate companion for elderly individuals. Your follow-up questions "
    "are warm, specific, and show genuine interest in their wellbeing."
)
CHECK_IN_CLOSING_SYSTEM_PROMPT = (
    "You are a caring companion who checks in on elderly people. Your responses are warm, "
    "specific, and demonstrate genuine care."
)
ANALYSIS_SYSTEM_PROMPT = (
    "You are an analytical assistant that extracts structured information from "
    "conversations. Respond only with valid JSON."
)
DAILY_REPORT_SYSTEM_PROMPT = (
    "You are an elderly care assistant that generates concise, informative daily reports "
    "for caregivers. Your reports highlight key information while maintaining privacy "
    "and dignity."
)

_TOPIC_STOPWORDS = {
    "hello", "there", "today", "doing", "feeling", "going", "about", "would",
    "morning", "afternoon", "evening",
}


def current_season(now: datetime) -> str:
    month = now.month
    if 3 <= month <= 5:
        return "Spring"
    if 6 <= month <= 8:
        return "Summer"
    if 9 <= month <= 11:
        return "Fall"
    return "Winter"


def build_check_in_question_prompt(
    user: User | None, time_slot: str, recent: list[CheckIn], now: datetime
) -> str:
    profile = (user.profile if user else None) or {}
    topics: list[str] = []
    context_lines = []
    if recent:
        context_lines.append("Recent check-ins:")
        for i, check_in in enumerate(recent, start=1):
            context_lines.append(
                f"{i}. Q: {check_in.question}\n   A: {check_in.first_response or 'No response'}"
            )
            topics.extend(
                word for word in check_in.question.lower().split()
                if len(word) > 4 and word not in _TOPIC_STOPWORDS
            )

    details = [
        f"- Name: {user.name if user else 'there'}",
        f"- Age: {(user.age if user else None) or 'elderly'}",
        f"- Location: {(user.location if user else None) or 'unknown'}",
    ]
    if profile.get("interests"):
        details.append(f"- Interests: {', '.join(profile['interests'])}")
    if profile.get("activities"):
        details.append(f"- Regular activities: {', '.join(profile['activities'])}")
    if profile.get("health_conditions"):
        details.append(f"- Health conditions: {', '.join(profile['health_conditions'])}")

    return f"""Generate a unique, personalized check-in message for an elderly person that includes a natural follow-up question. Make this feel like a genuine, caring text from a friend or family member.

User details:
{chr(10).join(details)}

Current time slot: {time_slot} (But don't explicitly mention this time period - make it natural)
Current season: {current_season(now)}
Recent conversation topics to avoid: {', '.join(topics)}

{chr(10).join(context_lines)}

Guidelines:
1. Be creative and unpredictable - don't follow an obvious pattern of questions
2. Use a warm, friendly tone with natural language
3. Keep it brief (2-3 sentences maximum)
4. Include their name and an appropriate emoji
5. Make your question feel spontaneous and genuine
6. Be specific rather than generic when possible
7. Include ONE brief follow-up question that helps gauge their wellbeing or activities
8. Avoid repetitive check-in patterns"""


def format_analysis(analysis: dict[str, Any]) -> str:
    wellbeing = analysis.get("wellbeing") or {}
    return (
        f"- Sentiment: {analysis.get('sentiment')}\n"
        f"- Activities mentioned: {', '.join(analysis.get('activities') or []) or 'None mentioned'}\n"
        f"- Wellbeing: Physical ({wellbeing.get('physical')}), "
        f"Emotional ({wellbeing.get('emotional')}), Social ({wellbeing.get('social')})\n"
        f"- Concerns: {', '.join(analysis.get('concerns') or []) or 'None identified'}"
    )


def build_response_analysis_prompt(question: str, response: str) -> str:
    return f"""Analyze this elderly person's response to a check-in question.

Question: {question}
Response: {response}

Please extract and categorize the following information:
1. Overall sentiment (positive, neutral, negative)
2. Activities mentioned (list specific activities)
3. Wellbeing indicators (physical, emotional, social)
4. Any concerns or issues that might need attention

Format the response as a JSON object with these fields:
- sentiment: string (positive, neutral, or negative)
- activities: array of strings
- wellbeing: object with physical, emotional, and social properties (each rated as good, fair, or concerning)
- concerns: array of strings"""


def format_conversation(history: list[dict[str, str]]) -> str:
    return "\n\n".join(
        f"{'Elderly person' if m.get('role') == 'user' else 'Assistant'}: {m.get('content')}"
        for m in history
    )


def build_conversation_analysis_prompt(
    history: list[dict[str, str]], initial_analysis: dict[str, Any]
) -> str:
    return f"""Analyze this complete check-in conversation with an elderly person to provide a comprehensive assessment of their wellbeing.

Conversation:
{format_conversation(history)}

Initial analysis from first response:
{format_analysis(initial_analysis)}

Based on the FULL conversation, provide an updated analysis as a JSON object with:
- sentiment: string (positive, neutral, or negative)
- activities: array of strings mentioned throughout the conversation
- wellbeing: object with physical, emotional, and social (each good, fair, or concerning)
- concerns: array of strings
- needs_assistance: boolean"""


def build_follow_up_question_prompt(
    name: str, initial_response: str, analysis: dict[str, Any], focus: str
) -> str:
    return f"""Generate a natural, caring follow-up question to continue a check-in conversation with an elderly person.

User's name: {name}
Their initial response: "{initial_response}"

Analysis of their response:
{format_analysis(analysis)}

Focus area for follow-up: {focus}

Guidelines:
1. Ask ONE specific follow-up question that feels natural and caring, not clinical
2. Make it feel like a genuine conversation, not an interrogation
3. Be gentle and supportive, especially if their initial response suggests concerns
4. Acknowledge something from their first response to create continuity
5. Keep it brief (1-2 sentences)
6. Include their name and an emoji if appropriate"""


def build_second_follow_up_prompt(name: str, analysis: dict[str, Any]) -> str:
    return f"""Generate a final, gentle follow-up question for an elderly person that helps complete our understanding of their wellbeing.

User's name: {name}

Current understanding of their wellbeing:
{format_analysis(analysis)}

Guidelines:
1. Ask ONE specific question that helps complete your understanding of their current state
2. If they've expressed concerns, gently ask about what might help them feel better
3. If their emotional state seems low, focus on support and coping strategies
4. Make it warm and conversational, not clinical
5. Keep it brief (1-2 sentences)
6. Include their name and an emoji if appropriate"""


def build_final_response_prompt(name: str, last_message: str, analysis: dict[str, Any]) -> str:
    return f"""Generate a warm, supportive final message to conclude a check-in conversation with an elderly person.

User's name: {name}
Their last message: "{last_message}"

Analysis of the conversation:
{format_analysis(analysis)}

Guidelines:
1. Be warm, empathetic, and supportive
2. Acknowledge something specific from their responses
3. If they expressed concerns, offer gentle encouragement or validation
4. If appropriate, include a simple suggestion for wellbeing (but nothing prescriptive)
5. Keep it brief (2-3 sentences)
6. Include their name and an appropriate emoji
7. Don't ask follow-up questions that require a response"""


def build_daily_report_prompt(
    user: User, check_ins: list[CheckIn], medication_summary: str, today: str
) -> str:
    blocks = []
    for i, check_in in enumerate(check_ins, start=1):
        analysis = check_in.analysis or {}
        blocks.append(
            f"Check-in {i} ({check_in.time_slot}):\n"
            f"Conversation:\n{format_conversation(check_in.conversation_history or [])}\n"
            f"{format_analysis(analysis)}"
        )

    return f"""Generate a daily activity report for a caregiver about their elderly family member.

Elderly person: {user.name} ({user.age or 'elderly'})
Date: {today}

Today's check-ins:
{chr(10).join(blocks)}

Medication Summary:
{medication_summary}

Create a concise, informative daily report that:
1. Summarizes the elderly person's day and activities
2. Notes their overall wellbeing and mood
3. Highlights any potential concerns
4. Includes a summary of their medication adherence for the day
5. Keeps a warm, positive tone while being factual

Format it nicely with appropriate sections, bullet points where helpful, and emojis where appropriate."""


def describe_medication(medication: Medication) -> str:
    dosage = f" ({medication.dosage})" if medication.dosage else ""
    return f"{medication.name}{dosage}"
