"""Build the text prompts sent to the agent for each loop iteration."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from .constants import PROJECT_TOOL_FILES
from .models import PlanDocument, PlanTask, ProjectTools

NO_DESCRIPTION = "No additional description provided."


def detect_project_tools(directory: Path) -> ProjectTools:
    """Check the project root for a justfile, package.json, and Makefile."""
    return ProjectTools(
        has_justfile=(directory / PROJECT_TOOL_FILES["justfile"]).is_file(),
        has_package_json=(directory / PROJECT_TOOL_FILES["package_json"]).is_file(),
        has_makefile=(directory / PROJECT_TOOL_FILES["makefile"]).is_file(),
    )


def _build_tools_section(tools: Optional[ProjectTools]) -> str:
    if not tools or not tools.any:
        return ""
    names: list[str] = []
    usage: list[str] = []
    if tools.has_justfile:
        names.append("`just` (justfile)")
        usage.append("- Run `just` to see all available tasks, then use `just <task>` for build/test/format")
    if tools.has_package_json:
        names.append("`npm`/`bun` (package.json)")
        usage.append("- Use `npm run <script>` or `bun run <script>` for package.json scripts")
    if tools.has_makefile:
        names.append("`make` (Makefile)")
        usage.append("- Use `make <target>` for Makefile targets")
    return (
        "## Available Tools\n"
        f"This project has: {', '.join(names)}\n\n"
        "**IMPORTANT**: Use these project tools for build, test, and other operations:\n"
        + "\n".join(usage)
        + "\n\n"
    )


def _build_task_list(plan: PlanDocument, current_num: int) -> str:
    lines = []
    for index, task in enumerate(plan.tasks, start=1):
        checkbox = "[x]" if task.completed else "[ ]"
        marker = " ← CURRENT" if index == current_num else ""
        lines.append(f"{index}. {checkbox} {task.title}{marker}")
    return "\n".join(lines)


def build_task_prompt(
    plan: PlanDocument,
    task: PlanTask,
    task_num: int,
    *,
    loop_mode: bool,
    project_tools: Optional[ProjectTools] = None,
) -> str:
    """Build the prompt for working on one task of a plan.

    Args:
        plan: Parsed plan (used for title, overview, and progress).
        task: Task to work on.
        task_num: 1-based position of `task` in the plan.
        loop_mode: Whether the loop will commit and advance automatically.
        project_tools: Detected project task runners to advertise.

    Returns:
        The prompt text.
    """
    prompt = f"# {plan.title or 'Project Plan'}\n\n"
    if plan.overview:
        prompt += f"## Project Context\n{plan.overview}\n\n"
    prompt += _build_tools_section(project_tools)
    prompt += f"## Progress: {plan.completed_count}/{len(plan.tasks)} tasks complete\n\n"
    prompt += "### All Tasks\n" + _build_task_list(plan, task_num) + "\n"
    prompt += f"\n## Current Task: #{task_num}\n\n"
    prompt += f"**{task.title}**\n\n"
    prompt += (task.description or NO_DESCRIPTION) + "\n\n"

    if loop_mode:
        prompt += """## Instructions

Complete this task thoroughly. When you finish:
1. Verify your work is correct
2. The task will be automatically marked complete
3. A git commit will be created for this task
4. The loop will continue to the next task

Focus ONLY on this task - do not work ahead.
"""
    else:
        prompt += """## Instructions

Complete this task thoroughly. When you finish:
1. Verify your work is correct
2. The task will be automatically marked complete
3. Review your changes and commit manually when ready
"""
    return prompt


def build_single_task_prompt(
    plan: PlanDocument,
    plan_file: str,
    task: PlanTask,
    project_tools: Optional[ProjectTools] = None,
) -> str:
    tools_section = _build_tools_section(project_tools)
    context = f"\n## Project Context\n\n{plan.overview}" if plan.overview else ""
    task_prompt = f"""# Single Task Execution

**Plan:** {plan.title or plan_file}

{tools_section}## Current Task

**{task.title}**

{task.description or NO_DESCRIPTION}

## Instructions

1. Complete the task described above
2. When done, verify the work is correct
3. The task will be automatically marked complete when you finish
{context}"""
    return f"""🎯 Executing single task: {task.title}

---

{task_prompt}

---

Note: This is a ONE-TIME execution (no loop). The task will be automatically
marked complete when finished. No git commit will be created - review and
commit your changes manually when ready."""


def build_plan_promise_banner(completion_promise: str) -> str:
    rule = "═" * 59
    return f"""

{rule}
COMPLETION: Output <promise>{completion_promise}</promise> when ALL tasks are done
{rule}"""


def build_loop_start_message(
    plan: PlanDocument,
    plan_file: str,
    task: PlanTask,
    task_num: int,
    max_iterations: int,
    task_prompt: str,
) -> str:
    pending = len(plan.pending_tasks)
    output = f"""🔄 Plan loop started from {plan_file}!

Plan: {plan.title or 'Untitled'}
Tasks: {pending} pending, {len(plan.tasks) - pending} complete
Max iterations: {max_iterations if max_iterations > 0 else 'unlimited'}
Mode: Loop with auto-commit per task

Starting with task {task_num}: {task.title}

---

{task_prompt}"""
    if plan.completion_promise:
        output += build_plan_promise_banner(plan.completion_promise)
    return output


def build_iteration_header(iteration: int, completion_promise: Optional[str]) -> str:
    if completion_promise:
        return (
            f"🔄 Loop iteration {iteration} | To stop: output <promise>{completion_promise}</promise> "
            "(ONLY when statement is TRUE - do not lie to exit!)"
        )
    return f"🔄 Loop iteration {iteration} | No completion promise set - loop runs infinitely"


def build_direct_continuation(iteration: int, completion_promise: Optional[str], prompt: str) -> str:
    """Re-send the original prompt verbatim beneath the iteration header."""
    return f"{build_iteration_header(iteration, completion_promise)}\n\n---\n\n{prompt}"


def build_next_task_prompt(
    plan: PlanDocument,
    task: PlanTask,
    task_num: int,
    iteration: int,
    completion_promise: Optional[str],
    project_tools: Optional[ProjectTools] = None,
) -> str:
    header = (
        f"🔄 Loop iteration {iteration} | Task {task_num}/{len(plan.tasks)} | "
        f"{plan.completed_count}/{len(plan.tasks)} tasks complete"
    )
    prompt = f"{header}\n\n---\n\n" + build_task_prompt(
        plan, task, task_num, loop_mode=True, project_tools=project_tools
    )
    if completion_promise:
        prompt += build_plan_promise_banner(completion_promise)
    return prompt


def build_direct_start_message(prompt: str, max_iterations: int, completion_promise: Optional[str]) -> str:
    promise_line = (
        f"{completion_promise} (ONLY output when TRUE - do not lie!)" if completion_promise else "none (runs forever)"
    )
    output = f"""🔄 Loop activated!

Iteration: 1
Max iterations: {max_iterations if max_iterations > 0 else 'unlimited'}
Completion promise: {promise_line}

The loop is now active. When the session becomes idle, the SAME PROMPT will be
fed back to you. You'll see your previous work in files, creating a
self-referential loop where you iteratively improve on the same task.

⚠️  WARNING: This loop only stops on max iterations, the completion promise,
or an explicit cancel.

---

{prompt}"""
    if completion_promise:
        rule = "═" * 59
        output += f"""

{rule}
CRITICAL - Loop Completion Promise
{rule}

To complete this loop, output this EXACT text:
  <promise>{completion_promise}</promise>

STRICT REQUIREMENTS (DO NOT VIOLATE):
  ✓ Use <promise> XML tags EXACTLY as shown above
  ✓ The statement MUST be completely and unequivocally TRUE
  ✓ Do NOT output false statements to exit the loop
  ✓ Do NOT lie even if you think you should exit

IMPORTANT - Do not circumvent the loop:
  Even if you believe you're stuck, the task is impossible,
  or you've been running too long - you MUST NOT output a
  false promise statement. The loop is designed to continue
  until the promise is GENUINELY TRUE. Trust the process.
{rule}"""
    return output
