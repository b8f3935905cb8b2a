import datetime

SYSTEM_PROMPT_TEMPLATE = """
You are a helpful assistant that can use tools to answer questions.

Today is {today}.

Available tools:
{tools}

Rules:
- Call a tool whenever it gives a better answer than your own knowledge
- Read each tool result before deciding on the next step
- If a tool fails, read the error and fix the call instead of repeating it
- Never invent search results or computed numbers
- Answer in plain text once no more tools are needed
"""


def format_system_prompt(tools, today=None):
    lines = [
        f"- {tool['function']['name']}: {tool['function']['description']}"
        for tool in tools
    ]
    return SYSTEM_PROMPT_TEMPLATE.format(
        today=(today or datetime.date.today()).isoformat(),
        tools="\n".join(lines) or "- (none)"
    )
