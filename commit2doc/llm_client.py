import os
import logging
from typing import Sequence
from openai import AsyncOpenAI

from .models import Commit, GenerationConfig

# --- Setup Logging ---
logger = logging.getLogger(__name__)

# --- Configuration ---
llm_host = os.getenv("LLM_BASE_URL", "http://localhost")
llm_port = os.getenv("LLM_BASE_PORT", "11434")
llm_api_base_url = f"{llm_host.rstrip('/')}:{llm_port}/v1"
MODEL_NAME = os.getenv("LLM_MODEL", "llama3")
LLM_API_KEY = os.getenv("LLM_API_KEY", "ollama")
LLM_TIMEOUT = float(os.getenv("LLM_TIMEOUT", "120"))

MAX_DIFF_LEN = 15000
TEMPERATURE = 0.4  # low, for factual documentation
EMPTY_RESPONSE = "# Error: No content generated."

SYSTEM_PROMPT = "You are an expert software documentation generator. You are precise, clear, and thorough."

BASE_TASK = """
You are a world-class Technical Writer. Your task is to write comprehensive, developer-friendly documentation for a software feature based on the provided git commits.
The documentation should be in Markdown format.
"""

UPDATE_TASK = """
IMPORTANT: You have been provided with an EXISTING DOCUMENTATION file.
Your goal is to UPDATE this existing documentation to reflect the changes introduced by the new commits.
Maintain the style and structure of the original document where possible, but add new sections or modify existing ones as needed.
"""

NEW_DOCUMENT_TASK = """
Since no previous documentation was provided, create a brand new documentation file.
Structure it with the following sections:
1. **Title**: A clear, concise title for the feature/change.
2. **Overview**: High-level summary of what changed and why.
3. **Key Changes**: Bullet points of technical details.
4. **Usage**: Code examples or instructions on how to use the new feature.
5. **Configuration/Setup**: (If applicable)
"""

logger.info(f"Configuring LLM client:")
logger.info(f"  API Base URL: {llm_api_base_url}")
logger.info(f"  Model: {MODEL_NAME}")

# --- Initialize Async OpenAI Client ---
try:
    client = AsyncOpenAI(
        base_url=llm_api_base_url,
        api_key=LLM_API_KEY,
        timeout=LLM_TIMEOUT,
    )
except Exception as e:
    logger.error(f"Failed to initialize OpenAI client: {e}", exc_info=True)
    client = None


def render_commit(index: int, commit: Commit) -> str:
    diff = commit.diff[:MAX_DIFF_LEN]
    lines = [
        f"--- COMMIT {index} ---",
        f"Hash: {commit.hash}",
        f"Message: {commit.message}",
        f"Author: {commit.author or 'Unknown'}",
        f"Date: {commit.date or 'Unknown'}",
        "Diff/Changes:",
        diff,
    ]
    if len(commit.diff) > MAX_DIFF_LEN:
        lines.append("(truncated if too long)")
    lines.append("-----------------------")
    return "\n".join(lines)


def build_documentation_prompt(commits: Sequence[Commit], config: GenerationConfig) -> str:
    """
    Assembles the single prompt sent to the model: task instructions, the
    user's free-text context, the previous document if any, and every commit
    in store order.
    """
    task = BASE_TASK + (UPDATE_TASK if config.previous_doc_content else NEW_DOCUMENT_TASK)

    if config.previous_doc_content:
        previous_doc = f"```markdown\n{config.previous_doc_content}\n```"
    else:
        previous_doc = "None"

    prompt_lines = [task]
    prompt_lines.append("User Provided Extra Context:")
    prompt_lines.append(f'"{config.extra_info or "N/A"}"')
    prompt_lines.append("\nUser Provided Setup Instructions (incorporate this exactly if present):")
    prompt_lines.append(f'"{config.setup_instructions or "N/A"}"')
    prompt_lines.append("\nPrevious Documentation Content:")
    prompt_lines.append(previous_doc)
    prompt_lines.append("\nCommits to Process:")
    prompt_lines.append("\n\n".join(render_commit(i, c) for i, c in enumerate(commits, start=1)))
    prompt_lines.append("\nOutput the final Markdown only. Do not wrap in JSON.")
    return "\n".join(prompt_lines)


def failure_document(error: Exception) -> str:
    return f"# Generation Failed\n\nAn error occurred while communicating with the AI: {error}"


async def generate_documentation(commits: Sequence[Commit], config: GenerationConfig) -> str:
    """
    Calls the LLM once to produce Markdown documentation for the commits.
    Failures are returned as a Markdown error document rather than raised.
    """
    if not commits:
        raise ValueError("At least one commit is required to generate documentation.")

    user_prompt = build_documentation_prompt(commits, config)

    try:
        if not client:
            logger.error("LLM client is not initialized. Cannot generate documentation.")
            raise ConnectionError("LLM client failed to initialize.")

        logger.debug(f"Sending request to model '{MODEL_NAME}'. Commits: {len(commits)}, prompt length: {len(user_prompt)}")

        response = await client.chat.completions.create(
            model=MODEL_NAME,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            temperature=TEMPERATURE,
            stream=False,
        )
        markdown = response.choices[0].message.content if response.choices else None

        if not markdown or markdown.isspace():
            logger.warning(f"Model '{MODEL_NAME}' returned an empty document.")
            return EMPTY_RESPONSE

        logger.info(f"Generated documentation: {len(markdown)} characters")
        return markdown

    except Exception as e:
        logger.error(
            f"Error calling LLM (model: {MODEL_NAME}, URL: {llm_api_base_url}): {e}",
            exc_info=True
        )
        return failure_document(e)
