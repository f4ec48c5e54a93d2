"""
Text compaction helpers used to keep prompts inside a token budget.

- Conversation summarization: older turns collapse into one system turn
- Generic truncation: head + tail around an omission marker
- Section-aware truncation for markdown-like documents
- Structure-aware truncation for source files (imports and signatures only)
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

TRUNCATION_MARKER = "\n\n... [CONTENT TRUNCATED FOR TOKEN EFFICIENCY] ...\n\n"
MIDDLE_OMITTED_MARKER = "... [MIDDLE SECTIONS OMITTED] ..."
FILE_MIDDLE_MARKER = "\n\n... [TRUNCATED - middle portion omitted] ...\n\n"
PYTHON_SKELETON_MARKER = "# ... [FILE TRUNCATED - showing imports and definitions only] ..."
SCRIPT_SKELETON_MARKER = "// ... [FILE TRUNCATED - showing imports and signatures only] ..."
SECTION_JOINER = "\n---\n"

PYTHON_EXTENSIONS = {".py", ".pyi"}
SCRIPT_EXTENSIONS = {".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs"}

_SECTION_SPLIT = re.compile(r"\n---\n|\n(?=## )")
_PYTHON_KEEP = re.compile(r"^\s*(import\s|from\s+\S+\s+import\s|class\s|def\s|async\s+def\s|@\w)")
_SCRIPT_IMPORT = re.compile(r"^\s*import\s")
_SCRIPT_SIGNATURE = re.compile(
	r"^\s*(export\s+)?(default\s+)?(abstract\s+)?(async\s+)?"
	r"(class|interface|type|enum|function|const|let)\b"
)
_SCRIPT_METHOD = re.compile(
	r"^\s+(public\s+|private\s+|protected\s+|static\s+|readonly\s+|async\s+)*"
	r"[A-Za-z_$][\w$]*\s*\([^)]*\)\s*(:\s*[^={]+)?\s*\{?\s*$"
)
_SOURCE_HINT = re.compile(
	r"^\s*(import\s|from\s+\S+\s+import\s|def\s|async\s+def\s|class\s|export\s|function\s|interface\s)",
	re.MULTILINE,
)

_DECISION = re.compile(r"(?:decided|chose|will|should|must|recommend)[^.!?]+[.!?]", re.IGNORECASE)
_QUESTION = re.compile(r"[^.!?\n]*\?")
_FIRST_SENTENCE = re.compile(r"^[^.!?]+[.!?]")

Estimator = Callable[[str], int]


@dataclass
class ConversationTurn:
	role: str
	content: str


@dataclass
class TruncationResult:
	content: str
	original_tokens: int
	truncated_tokens: int
	was_truncated: bool


def summarize_turn(turn: ConversationTurn, max_chars: int = 200) -> str:
	"""Condense one turn to its directional content."""
	content = turn.content.strip()
	if len(content) < max_chars:
		return content

	if turn.role == "user":
		first = _FIRST_SENTENCE.match(content)
		if first:
			return first.group(0).strip() + "..."
		return content[:150] + "..."

	key_points = [m.group(0).strip() for m in _DECISION.finditer(content)][:2]
	key_points += [m.group(0).strip() for m in _QUESTION.finditer(content) if m.group(0).strip()][:2]
	if key_points:
		return " ".join(point[:150] for point in key_points)

	return content[:150] + "..."


def summarize_conversation(turns: list[ConversationTurn], keep_recent: int = 3) -> list[ConversationTurn]:
	"""
	Collapse all but the most recent turns into one system summary turn.

	Args:
		turns: Conversation in chronological order
		keep_recent: Number of trailing turns kept verbatim

	Returns:
		New list of turns; the input list is not modified
	"""
	keep_recent = max(0, keep_recent)
	if len(turns) <= keep_recent + 1:
		return list(turns)

	split_at = len(turns) - keep_recent
	older, recent = turns[:split_at], turns[split_at:]

	lines = ["[CONVERSATION SUMMARY]"]
	for turn in older:
		lines.append(f"[{turn.role.upper()}]: {summarize_turn(turn)}")
	lines.append("[END SUMMARY]")

	return [ConversationTurn(role="system", content="\n".join(lines))] + list(recent)


def head_tail(text: str, max_chars: int, marker: str = TRUNCATION_MARKER) -> str:
	"""Keep the beginning and the end of text around an omission marker."""
	if len(text) <= max_chars:
		return text
	available = max_chars - len(marker)
	if available <= 0:
		return text[:max(0, max_chars)]
	head = available // 2
	tail = available - head
	return text[:head] + marker + (text[-tail:] if tail else "")


def truncate_sections(text: str, max_chars: int) -> str:
	"""Keep leading sections and the final section; drop the middle."""
	if len(text) <= max_chars:
		return text

	sections = _SECTION_SPLIT.split(text)
	if len(sections) <= 1:
		return head_tail(text, max_chars)

	end_reserve = int(max_chars * 0.3)
	last = head_tail(sections[-1], end_reserve)
	head_budget = max_chars - len(last) - len(MIDDLE_OMITTED_MARKER) - 2 * len(SECTION_JOINER)

	kept: list[str] = []
	used = 0
	for section in sections[:-1]:
		cost = len(section) + (len(SECTION_JOINER) if kept else 0)
		if used + cost > head_budget:
			break
		kept.append(section)
		used += cost

	if not kept and head_budget > 0:
		kept.append(sections[0][:head_budget])

	result = SECTION_JOINER.join(kept + [MIDDLE_OMITTED_MARKER, last])
	return result[:max_chars]


def python_skeleton(text: str) -> str:
	kept = [line.rstrip() for line in text.splitlines() if _PYTHON_KEEP.match(line)]
	if not kept:
		return ""
	return "\n".join(kept) + "\n\n" + PYTHON_SKELETON_MARKER


def script_skeleton(text: str) -> str:
	lines = text.splitlines()
	imports = [line.rstrip() for line in lines if _SCRIPT_IMPORT.match(line)]
	signatures = [
		line.rstrip()
		for line in lines
		if not _SCRIPT_IMPORT.match(line)
		and (_SCRIPT_SIGNATURE.match(line) or _SCRIPT_METHOD.match(line))
	]
	if not imports and not signatures:
		return ""
	parts = imports + ([""] if imports and signatures else []) + signatures
	return "\n".join(parts) + "\n\n" + SCRIPT_SKELETON_MARKER


def looks_like_source(text: str) -> bool:
	"""Heuristic: enough declaration lines to be worth a skeleton."""
	hits = len(_SOURCE_HINT.findall(text))
	nonblank = sum(1 for line in text.splitlines() if line.strip())
	return hits >= 3 and nonblank > 0 and hits / nonblank >= 0.05


def _language_for(text: str, path: Optional[str]) -> Optional[str]:
	if path:
		suffix = Path(path).suffix.lower()
		if suffix in PYTHON_EXTENSIONS:
			return "python"
		if suffix in SCRIPT_EXTENSIONS:
			return "script"
		return None
	if not looks_like_source(text):
		return None
	if re.search(r"^\s*(def|async\s+def)\s", text, re.MULTILINE) or re.search(
		r"^\s*from\s+\S+\s+import\s", text, re.MULTILINE
	):
		return "python"
	return "script"


def _fit_skeleton(skeleton: str, max_chars: int) -> str:
	"""Trim a skeleton from the bottom, keeping its marker."""
	if len(skeleton) <= max_chars:
		return skeleton
	body, _, marker = skeleton.rpartition("\n\n")
	room = max_chars - len(marker) - 2
	if room <= 0:
		return skeleton[:max(0, max_chars)]
	return body[:room] + "\n\n" + marker


def truncate_file(text: str, max_chars: int, path: Optional[str] = None) -> str:
	"""
	Truncate file content, keeping structure where the file type allows it.

	Python files keep imports, decorators and def/class lines. JS/TS files keep
	imports and declaration/method signatures. Anything else keeps head and tail.
	"""
	if len(text) <= max_chars:
		return text

	language = _language_for(text, path)
	skeleton = ""
	if language == "python":
		skeleton = python_skeleton(text)
	elif language == "script":
		skeleton = script_skeleton(text)

	if skeleton:
		return _fit_skeleton(skeleton, max_chars)
	return head_tail(text, max_chars, FILE_MIDDLE_MARKER)


def _truncate_chars(text: str, max_chars: int) -> str:
	if looks_like_source(text):
		return truncate_file(text, max_chars)
	if _SECTION_SPLIT.search(text):
		return truncate_sections(text, max_chars)
	return head_tail(text, max_chars)


def truncate_to_fit(
	text: str,
	max_tokens: int,
	estimate: Estimator,
	chars_per_token: int = 4,
) -> TruncationResult:
	"""
	Shrink text until its estimated token count fits max_tokens.

	Args:
		text: Content to truncate
		max_tokens: Token ceiling for the result
		estimate: Token estimator (usually TokenBudgetMonitor.estimate_tokens)
		chars_per_token: Initial characters-per-token guess for the first cut

	Returns:
		TruncationResult with before/after token counts
	"""
	original_tokens = estimate(text)
	max_tokens = max(0, max_tokens)
	if original_tokens <= max_tokens:
		return TruncationResult(text, original_tokens, original_tokens, False)

	max_chars = min(len(text), max_tokens * chars_per_token)
	content = _truncate_chars(text, max_chars)
	tokens = estimate(content)

	# Estimator is not linear in characters, so shrink until it fits
	for _ in range(8):
		if tokens <= max_tokens or max_chars <= 0:
			break
		max_chars = min(max_chars - 1, int(max_chars * max_tokens / tokens))
		content = _truncate_chars(text, max(0, max_chars))
		tokens = estimate(content)

	if tokens > max_tokens:
		content = ""
		tokens = 0

	return TruncationResult(content, original_tokens, tokens, True)
