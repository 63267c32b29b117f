"""Prompt templates for review generation.

Two styles are kept:
- instruction: a flat instruction for text-generation inference models
  (the codereviewer-style endpoint), short and literal.
- chat: a structured request for chat-completion models, which follow
  section headings well.

Both ask for the suggested title on the last line as ``Title: <title>``,
which is what review.parsing looks for.
"""

INSTRUCTION_PROMPT_TEMPLATE = """Review the following code changes and provide feedback:

{diff}

Please provide:
1. A brief summary of the changes
2. Any potential issues or improvements
3. A suggested title for the pull request, on the last line, in the form Title: <title>"""


CHAT_PROMPT_TEMPLATE = """Review the pull request below.

Current title: {pr_title}

Changes (one section per file; "+" added, "-" removed, indented lines are context):

{diff}

Respond in markdown with these sections:

## Summary
Two or three sentences describing what the change does.

## Issues
Bugs, risky behaviour, missing error handling or tests. Name the file for each point. Write "None found." if there are none.

## Suggestions
Optional improvements to readability or structure.

End your answer with exactly one line of the form:
Title: <a concise pull request title, at most 72 characters>"""


def build_review_prompt(diff_section: str, style: str = "instruction", pr_title: str = "") -> str:
    """Render the prompt for a backend's prompt style."""
    if style == "chat":
        return CHAT_PROMPT_TEMPLATE.format(
            diff=diff_section,
            pr_title=pr_title or "(none)",
        )
    return INSTRUCTION_PROMPT_TEMPLATE.format(diff=diff_section)
