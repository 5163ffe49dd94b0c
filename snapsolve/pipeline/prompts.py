"""Message builders for the extraction, generation and debug requests."""

from __future__ import annotations

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from snapsolve.gateway import image_part
from snapsolve.schemas import ImageArtifact, ProblemInfo


def extraction_messages(
    screenshots: list[ImageArtifact], language: str, response_language: str
) -> list[BaseMessage]:
    instruction = (
        "Extract the coding problem statement AND the relevant code snippet from these images. "
        'The problem might be stated as a question (e.g., "What will this code output?"). '
        "Ensure you include the actual code itself, not just the question. "
        f"Programming Language: {language}. Respond in {response_language}. "
        "Return the combined problem statement and code."
    )
    content = [{"type": "text", "text": instruction}]
    content.extend(image_part(shot.data) for shot in screenshots)
    return [HumanMessage(content=content)]


def generation_messages(
    problem: ProblemInfo, language: str, response_language: str
) -> list[BaseMessage]:
    lang = response_language
    system_prompt = f"""You are an expert coding assistant. Analyze the provided problem and code snippet.
Respond ENTIRELY in {lang}. Be concise and focus on the essential information.

Instructions:
1.  If possible, provide a very brief, direct answer to the problem first (e.g., the final output value or a direct yes/no).
2.  Then, provide the detailed explanation, code, and complexity analysis.
3.  Generate a response in JSON format containing the following fields:
    - "short_answer": (Nullable string) A very brief, direct answer to the problem, if applicable (e.g., the program's output). Use null if not applicable. MUST be in {lang}.
    - "code": (String) The corrected or proposed code solution in {language}. Comments within the code MUST be in {lang}.
    - "thoughts": (Array of strings) Explanation of your thought process, step-by-step. MUST be in {lang}.
    - "time_complexity": (String) Time complexity analysis (e.g., "O(n)"). MUST be in {lang}.
    - "space_complexity": (String) Space complexity analysis (e.g., "O(1)"). MUST be in {lang}.

If the problem statement is incomplete or unclear, set "short_answer" to null, explain the issue clearly in the "thoughts" field (in {lang}), and set "code" to an empty string or a relevant placeholder comment (in {lang})."""
    user_prompt = (
        f"Problem and Code:\n```\n{problem.problem_statement}\n```\n\n"
        "Generate the JSON response as described in the system prompt."
    )
    return [SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)]


def debug_messages(
    problem: ProblemInfo,
    screenshots: list[ImageArtifact],
    language: str,
    response_language: str,
) -> list[BaseMessage]:
    system_prompt = (
        f"You are an expert debugger. Analyze and fix this code in {language} language. "
        f"Respond in {response_language}."
    )
    text = (
        f"Problem: {problem.problem_statement}\n\n"
        f"Current solution: {problem.solution_text or 'not available'}\n\n"
        "Debug this code."
    )
    content = [{"type": "text", "text": text}]
    content.extend(image_part(shot.data) for shot in screenshots)
    return [SystemMessage(content=system_prompt), HumanMessage(content=content)]
