"""LLM prompts for instruction planning."""

from .models import CachedAction

PLAN_FORMAT = """[
  { "actionName": "cached_action_name", "params": { "key": "value" } },
  { "actionName": "new instruction here", "params": {} }
]"""


def format_available_actions(actions: list[CachedAction]) -> str:
    """One line per cached action, or 'None'."""
    if not actions:
        return "None"
    return "\n".join(f"- {a.name}: {a.instruction}" for a in actions)


def get_planning_prompt(instruction: str, website: str, current_url: str, actions: list[CachedAction]) -> str:
    """Build the prompt that turns an instruction into workflow steps.

    The field names actionName and params are a contract with the parser.
    """
    return f"""Parse this automation instruction into executable steps.

Website: {website}
Current URL: {current_url}

Available cached actions:
{format_available_actions(actions)}

User instruction: "{instruction}"

Return a JSON array of steps. Each step should either:
1. Use a cached action by name if it satisfies the step (put values for its {{placeholders}} in params)
2. Provide a new instruction if no cached action fits

Format:
{PLAN_FORMAT}

Return ONLY the JSON array, no other text."""
