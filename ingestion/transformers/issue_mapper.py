"""
Map raw Jira issue payloads onto IssueEntity with Pydantic validation
"""

import re
from typing import Dict, Any, Optional, List
from datetime import datetime
from pydantic import ValidationError as PydanticValidationError
from ingestion.transformers.document import extract_text
from schemas.harvest import IssueEntity, IssueComment, ProjectMetadata
from core.exceptions import TransformationError
import logging

logger = logging.getLogger(__name__)

_COMPACT_OFFSET = re.compile(r"([+-]\d{2})(\d{2})$")


class IssueMapper:
    """
    Convert /search issue payloads into entities for one project.
    
    Handles:
    - Optional nested objects (issuetype, status, reporter, ...)
    - Plain-text and ADF descriptions and comment bodies
    - Jira timestamps with compact offsets (2024-01-15T10:00:00.000+0000)
    """
    
    def __init__(self, project_key: str):
        self.project_key = project_key
    
    def map_issue(self, raw_issue: Dict[str, Any]) -> IssueEntity:
        """
        Returns:
            Validated IssueEntity with its comments
        
        Raises:
            TransformationError: If the payload lacks a key or id, or fails validation
        """
        issue_key = raw_issue.get("key")
        issue_id = raw_issue.get("id")
        if not issue_key or not issue_id:
            raise TransformationError(
                "Issue payload has no key or id",
                context={"project_key": self.project_key, "issue_key": issue_key}
            )
        
        fields = raw_issue.get("fields") or {}
        
        try:
            return IssueEntity(
                issue_key=issue_key,
                issue_id=str(issue_id),
                project_key=self.project_key,
                summary=fields.get("summary") or "",
                description=extract_text(fields.get("description")),
                issue_type=self._name(fields.get("issuetype")) or "",
                status=self._name(fields.get("status")) or "",
                priority=self._name(fields.get("priority")) or "",
                resolution=self._name(fields.get("resolution")),
                reporter=self._person(fields.get("reporter")),
                assignee=self._person(fields.get("assignee")),
                labels=fields.get("labels") or [],
                components=self._names(fields.get("components")),
                versions=self._names(fields.get("versions")),
                fix_versions=self._names(fields.get("fixVersions")),
                created_date=self._parse_datetime(fields.get("created")),
                updated_date=self._parse_datetime(fields.get("updated")),
                resolved_date=self._parse_datetime(fields.get("resolutiondate")),
                extra_metadata={
                    "votes": (fields.get("votes") or {}).get("votes", 0),
                    "watches": (fields.get("watches") or {}).get("watchCount", 0),
                    "subtasks": len(fields.get("subtasks") or []),
                },
                comments=self._comments(fields.get("comment")),
            )
        except PydanticValidationError as e:
            raise TransformationError(
                "Issue payload failed validation",
                context={"project_key": self.project_key, "issue_key": issue_key},
                original_exception=e
            )
    
    def _comments(self, comment_field: Any) -> List[IssueComment]:
        if not isinstance(comment_field, dict):
            return []
        
        comments = []
        for comment in comment_field.get("comments") or []:
            if not comment.get("id"):
                logger.debug(f"Skipping comment without id in {self.project_key}")
                continue
            comments.append(IssueComment(
                comment_id=str(comment["id"]),
                author=self._person(comment.get("author")) or "Unknown",
                body=extract_text(comment.get("body")),
                created_date=self._parse_datetime(comment.get("created")),
                updated_date=self._parse_datetime(comment.get("updated")),
            ))
        return comments
    
    @staticmethod
    def _name(value: Any) -> Optional[str]:
        if isinstance(value, dict):
            return value.get("name")
        return None
    
    @staticmethod
    def _names(values: Any) -> List[str]:
        if not isinstance(values, list):
            return []
        return [v["name"] for v in values if isinstance(v, dict) and v.get("name")]
    
    @staticmethod
    def _person(value: Any) -> Optional[str]:
        if isinstance(value, dict):
            return value.get("displayName") or value.get("name")
        return None
    
    @staticmethod
    def _parse_datetime(value: Any) -> Optional[datetime]:
        """Safely parse a Jira timestamp"""
        if value is None or value == "":
            return None
        if isinstance(value, datetime):
            return value
        text = _COMPACT_OFFSET.sub(r"\1:\2", str(value).replace("Z", "+00:00"))
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None


def map_project(raw_project: Dict[str, Any]) -> ProjectMetadata:
    """Project payload from /project/{key} to ProjectMetadata"""
    lead = raw_project.get("lead") or {}
    return ProjectMetadata(
        project_key=raw_project["key"],
        project_name=raw_project.get("name") or raw_project["key"],
        project_url=raw_project.get("self"),
        description=raw_project.get("description") or "",
        extra_metadata={
            "lead": lead.get("displayName"),
            "project_type_key": raw_project.get("projectTypeKey"),
            "avatar_urls": raw_project.get("avatarUrls"),
        },
    )
