import calendar
from datetime import date, timedelta
from typing import NamedTuple

# System instruction for task extraction
# Status defaults to Todo; Done only for unambiguous past-tense completion
SYSTEM_PROMPT = """You are a helpful task management assistant that carefully analyzes user requests to extract task details. You default tasks to "Todo" status unless explicitly told the task is in progress or already completed. IMPORTANT: Only mark a task as "Done" if it explicitly uses past tense verbs like "completed", "finished", or "done" AND does not contain any language indicating future work. If there is any ambiguity, always default to "Todo". Only respond with valid JSON, no other text."""

# Few-shot prompt; example deadlines are filled in from get_example_dates()
# so the model sees dates relative to today instead of stale ones
TASK_PROMPT = """You are a task management assistant helping to create a task from a natural language description.

I'll provide you with examples of how to interpret task descriptions, followed by a new task for you to analyze.

## EXAMPLES:

Example 1:
Request: "Finish coding the user authentication module by end of this month. It's a high priority task we're actively working on."
Response:
{{
    "title": "Implement Authentication Module",
    "description": "Complete development of the user authentication module, including login, signup, and password reset features.",
    "deadline": "{end_of_month}",
    "priority": "High",
    "status": "In Progress"
}}

Example 2:
Request: "Review the Q2 marketing budget proposal. Need your feedback before next Thursday."
Response:
{{
    "title": "Review Q2 Marketing Budget",
    "description": "Analyze and provide feedback on the proposed Q2 marketing budget document.",
    "deadline": "{next_thursday}",
    "priority": "Medium",
    "status": "Todo"
}}

Example 3:
Request: "We've already updated the company logo and delivered the new design assets to the web team."
Response:
{{
    "title": "Update Company Logo",
    "description": "Designed and delivered the updated company logo along with brand assets to the web team.",
    "deadline": "{recent_past}",
    "priority": "Medium",
    "status": "Done"
}}

Example 4:
Request: "Need to finalize product mockups for design. It's a low priority task and should be finished by the end of this month."
Response:
{{
    "title": "Finalize product mockups",
    "description": "Complete all mockups for the mobile app product screens.",
    "deadline": "{end_of_month}",
    "priority": "Low",
    "status": "Todo"
}}

Example 5:
Request: "Currently working on fix dashboard bug for software. It's a high priority task and should be finished later this week."
Response:
{{
    "title": "Fix dashboard bug",
    "description": "Identify and resolve the rendering issue on the analytics dashboard.",
    "deadline": "{end_of_week}",
    "priority": "High",
    "status": "In Progress"
}}

Example 6:
Request: "Create a landing page for the new product launch. This is high priority and needs to be done by the 15th."
Response:
{{
    "title": "Create Product Landing Page",
    "description": "Design and develop a landing page for the upcoming product launch with key features and benefits.",
    "deadline": "{mid_month}",
    "priority": "High",
    "status": "Todo"
}}

Example 7:
Request: "We completed and delivered the financial reports for the last quarter."
Response:
{{
    "title": "Prepare Quarterly Financial Reports",
    "description": "Compiled and delivered the complete financial reports for the last quarter.",
    "deadline": "{last_quarter}",
    "priority": "Medium",
    "status": "Done"
}}

## RULES FOR INTERPRETATION:

1. TITLE: A concise title (max 50 chars) that captures the essence of the task

2. DESCRIPTION: A detailed description with actionable steps and any requirements mentioned

3. DEADLINE: A specific date in YYYY-MM-DD format, based on the description:
   - If "end of month" or "next month" is mentioned -> use the last day of the current/next month
   - If "next week" is mentioned -> use 7 days from now
   - If "two weeks" is mentioned -> use 14 days from now
   - If a specific date is mentioned -> use that exact date
   - Otherwise, use a reasonable date based on the task's priority and complexity

4. PRIORITY: Exactly one of these values: "Low", "Medium", or "High"
   - If terms like "urgent", "critical", "high priority", "important" appear -> use "High"
   - If terms like "whenever", "sometime", "low priority", "not urgent" appear -> use "Low"
   - If no priority is explicitly stated -> use "Medium"
   - If multiple priorities are mentioned, prioritize the highest one

5. STATUS: Exactly one of these values: "Todo", "In Progress", or "Done"
   - DEFAULT TO "Todo" for any new tasks, future tasks, or when status is unclear
   - ONLY use "In Progress" if explicitly stated with phrases like "currently working on", "in progress", "already started", "working on"
   - ONLY use "Done" if ALL of these conditions are met:
     a) The task is described entirely in past tense (e.g., "completed", "finished", "done", "delivered")
     b) There are clear indicators that the work is fully completed (e.g., "already completed", "finished yesterday")
     c) There is NO language suggesting future work or deadlines
   - ANY task that starts with action verbs like "Create", "Build", "Fix", "Update", etc. should NEVER be "Done"
   - ANY task with a future deadline should NEVER be "Done"

Today's date is: {today}

## NEW TASK TO ANALYZE:

"{description}"

Respond ONLY with a valid JSON object with this exact structure:
{{
    "title": "Task title here",
    "description": "Detailed description here",
    "deadline": "YYYY-MM-DD",
    "priority": "Low" | "Medium" | "High",
    "status": "Todo" | "In Progress" | "Done"
}}
"""


class ExampleDates(NamedTuple):
    end_of_month: date
    next_thursday: date
    recent_past: date
    end_of_week: date
    mid_month: date
    last_quarter: date


def end_of_month(day: date) -> date:
    """Last calendar day of day's month."""
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def end_of_week(day: date) -> date:
    """Friday of the current week, or Sunday when day falls on a weekend."""
    weekday = day.weekday()  # 0=Mon
    if weekday <= 4:
        return day + timedelta(days=4 - weekday)
    return day + timedelta(days=6 - weekday)


def get_example_dates(today: date) -> ExampleDates:
    """
    Dates used to ground the few-shot examples.
    Pure function of today, so repeated calls on the same day agree.
    """
    # Thursday strictly after today
    days_to_thursday = (3 - today.weekday()) % 7 or 7

    mid_month = today.replace(day=15)
    if mid_month < today:
        if today.month == 12:
            mid_month = date(today.year + 1, 1, 15)
        else:
            mid_month = date(today.year, today.month + 1, 15)

    # Day before the first day of the current quarter
    quarter_start = date(today.year, (today.month - 1) // 3 * 3 + 1, 1)

    return ExampleDates(
        end_of_month=end_of_month(today),
        next_thursday=today + timedelta(days=days_to_thursday),
        recent_past=today - timedelta(days=7),
        end_of_week=end_of_week(today),
        mid_month=mid_month,
        last_quarter=quarter_start - timedelta(days=1),
    )


def build_task_prompt(description: str, today: date) -> str:
    dates = get_example_dates(today)
    return TASK_PROMPT.format(
        today=today.isoformat(),
        description=description,
        **{name: value.isoformat() for name, value in dates._asdict().items()},
    )
