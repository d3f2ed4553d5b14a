"""
Export stored issues as JSONL text records.

Every issue yields a ``summary``, ``classification`` and ``qa`` record; a
``discussion`` record is added when the issue has comments and a
``key_extraction`` record when its description is longer than 100 characters.
Record builders are pure functions of an ExportIssue.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional
from ingestion.base import Store
from schemas.harvest import ExportIssue
from core.exceptions import ExportError, HarvestException
import logging

logger = logging.getLogger(__name__)

MAX_DISCUSSION_COMMENTS = 10
KEY_EXTRACTION_MIN_DESCRIPTION = 100
CLASSIFICATION_DESCRIPTION_CHARS = 500
KEY_EXTRACTION_DESCRIPTION_CHARS = 1000

SUMMARY_INSTRUCTION = (
    "Write a brief (2-3 sentence) summary of the issue, mentioning the main "
    "problem and any suggested remediation."
)
CLASSIFICATION_INSTRUCTION = (
    "Assign a category to this issue (Bug, Feature, Improvement, Task) and "
    "indicate priority (Critical, Major, Minor, Trivial)."
)
QA_INSTRUCTION = "Answer the questions below using the issue context."
DISCUSSION_INSTRUCTION = (
    "Summarize discussion comments and extract any action items or decisions."
)
KEY_EXTRACTION_INSTRUCTION = (
    "List the main technical terms, components, and labels found in this issue."
)


# ============================================================================
# Record builders
# ============================================================================

def build_issue_context(record: ExportIssue) -> str:
    issue = record.issue
    lines = [
        f"Issue: {issue.issue_key}",
        f"Project: {record.project_name}",
        f"Type: {issue.issue_type}",
        f"Priority: {issue.priority}",
        f"Status: {issue.status}",
    ]
    if issue.resolution:
        lines.append(f"Resolution: {issue.resolution}")

    context = "\n".join(lines) + "\n"
    context += f"\nSummary: {issue.summary}\n"

    if issue.description:
        context += f"\nDescription:\n{issue.description}\n"
    if issue.components:
        context += f"\nComponents: {', '.join(issue.components)}\n"
    if issue.labels:
        context += f"Labels: {', '.join(issue.labels)}\n"

    return context


def generate_summary(record: ExportIssue) -> str:
    issue = record.issue
    issue_type = issue.issue_type.lower() or "issue"

    summary = f"Issue {issue.issue_key} is a {issue_type} in the {record.project_name} project"
    if issue.components:
        summary += f" affecting {issue.components[0]}"
    summary += f". {issue.summary}"

    if issue.status in ("Resolved", "Closed"):
        summary += f" This issue has been {issue.status.lower()}"
        if issue.resolution:
            summary += f" as {issue.resolution.lower()}"
        summary += "."
    else:
        summary += f" The issue is currently {(issue.status or 'open').lower()}."

    return summary


def summary_record(record: ExportIssue) -> Dict[str, Any]:
    issue = record.issue
    return {
        "type": "summary",
        "metadata": {
            "issue_key": issue.issue_key,
            "project": issue.project_key,
            "issue_type": issue.issue_type,
            "status": issue.status,
        },
        "instruction": SUMMARY_INSTRUCTION,
        "input": build_issue_context(record),
        "output": generate_summary(record),
    }


def classification_record(record: ExportIssue) -> Dict[str, Any]:
    issue = record.issue
    description = issue.description[:CLASSIFICATION_DESCRIPTION_CHARS]
    return {
        "type": "classification",
        "metadata": {
            "issue_key": issue.issue_key,
            "project": issue.project_key,
            "actual_type": issue.issue_type,
            "actual_priority": issue.priority,
        },
        "instruction": CLASSIFICATION_INSTRUCTION,
        "input": f"Title: {issue.summary}\n\nDescription: {description}",
        "output": {
            "issue_type": issue.issue_type,
            "priority": issue.priority,
            "components": issue.components,
            "labels": issue.labels,
        },
    }


def qa_record(record: ExportIssue) -> Dict[str, Any]:
    issue = record.issue
    key = issue.issue_key

    status_answer = f"The issue is currently {issue.status}"
    if issue.resolution:
        status_answer += f" and resolved as {issue.resolution}"

    if issue.components:
        components_answer = f"The affected components are: {', '.join(issue.components)}"
    else:
        components_answer = "No specific components are mentioned."

    qa_pairs = [
        {"question": f"What is the main problem described in issue {key}?", "answer": issue.summary},
        {"question": f"What is the current status of issue {key}?", "answer": status_answer + "."},
        {"question": f"Which components are affected by issue {key}?", "answer": components_answer},
    ]
    if issue.assignee:
        qa_pairs.append({
            "question": f"Who is assigned to work on issue {key}?",
            "answer": f"This issue is assigned to {issue.assignee}.",
        })

    return {
        "type": "qa",
        "metadata": {"issue_key": key, "project": issue.project_key},
        "instruction": QA_INSTRUCTION,
        "context": build_issue_context(record),
        "qa_pairs": qa_pairs,
    }


def discussion_record(record: ExportIssue) -> Dict[str, Any]:
    issue = record.issue
    comments = issue.comments
    participants = {comment.author for comment in comments}

    comment_text = "\n\n".join(
        f"Comment {index} by {comment.author}:\n{comment.body}"
        for index, comment in enumerate(comments[:MAX_DISCUSSION_COMMENTS], start=1)
    )

    key_points = []
    if comments:
        key_points.append(f"Discussion involves {len(participants)} participants")
        key_points.append("Recent activity suggests ongoing development or discussion")

    return {
        "type": "discussion",
        "metadata": {
            "issue_key": issue.issue_key,
            "project": issue.project_key,
            "comment_count": len(comments),
        },
        "instruction": DISCUSSION_INSTRUCTION,
        "input": {"issue_summary": issue.summary, "comments": comment_text},
        "output": {
            "key_points": key_points,
            "participant_count": len(participants),
            "total_comments": len(comments),
        },
    }


def key_extraction_record(record: ExportIssue) -> Dict[str, Any]:
    issue = record.issue
    description = issue.description[:KEY_EXTRACTION_DESCRIPTION_CHARS]
    return {
        "type": "key_extraction",
        "metadata": {"issue_key": issue.issue_key, "project": issue.project_key},
        "instruction": KEY_EXTRACTION_INSTRUCTION,
        "input": f"{issue.summary}\n\n{description}",
        "output": {
            "labels": issue.labels,
            "components": issue.components,
            "issue_type": issue.issue_type,
        },
    }


def build_records(record: ExportIssue) -> List[Dict[str, Any]]:
    """All JSONL records for one issue, in output order"""
    records = [summary_record(record), classification_record(record), qa_record(record)]
    if record.issue.comments:
        records.append(discussion_record(record))
    if len(record.issue.description) > KEY_EXTRACTION_MIN_DESCRIPTION:
        records.append(key_extraction_record(record))
    return records


# ============================================================================
# Writer
# ============================================================================

class JSONLExporter:
    """Reads issues from a Store and writes them as JSONL files"""

    def __init__(self, store: Store):
        self.store = store

    async def export_to_jsonl(self, output_path: str, project_key: Optional[str] = None) -> Dict[str, Any]:
        """
        Write every stored issue (optionally one project's) to ``output_path``.

        A ``<name>_stats.json`` file is written next to it.

        Returns:
            Stats dict with total_issues, total_records and output_path
        """
        scope = f"project {project_key}" if project_key else "all projects"
        logger.info(f"Starting JSONL export for {scope}")

        issues = await self.store.list_entities_for_export(project_key)
        logger.info(f"Retrieved {len(issues)} issues for export")

        records = []
        for issue in issues:
            records.extend(build_records(issue))

        path = Path(output_path)
        stats = {
            "total_issues": len(issues),
            "total_records": len(records),
            "output_path": str(path),
        }

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("w", encoding="utf-8") as f:
                for record in records:
                    f.write(json.dumps(record, ensure_ascii=False) + "\n")

            stats_path = path.with_name(f"{path.stem}_stats.json")
            stats_path.write_text(json.dumps(stats, indent=2), encoding="utf-8")
        except OSError as e:
            raise ExportError(
                f"Failed to write export to {path}",
                context={"output_path": str(path), "project_key": project_key},
                original_exception=e
            )

        logger.info(f"Exported {len(records)} records to {path}")
        return stats

    async def export_projects_separately(self, project_keys: List[str], output_dir: str) -> List[Dict[str, Any]]:
        """One ``<project>_training.jsonl`` per project; failures are reported, not raised"""
        results = []

        for project_key in project_keys:
            output_path = Path(output_dir) / f"{project_key.lower()}_training.jsonl"
            try:
                stats = await self.export_to_jsonl(str(output_path), project_key)
                results.append({"project_key": project_key, **stats})
            except HarvestException as e:
                logger.error(f"Failed to export project {project_key}: {e}")
                results.append({"project_key": project_key, "error": e.message})

        return results
