"""
Managed email templates.

Staff edit the subject and bodies of transactional emails from the admin.
Each edit snapshots the previous content as a numbered version so it can be
restored later. Templates use {{variable}} placeholders; each template lists
the variables it expects, with an example value used for previews.
"""

import logging
from typing import Any, Mapping, Optional

from storefront.data_store import DataStore, get_data_store, new_id
from storefront.errors import NotFoundError, ValidationError
from storefront.models import EmailTemplate, EmailTemplateVersion, RenderedEmail, utcnow
from storefront.templates import find_placeholders, replace_variables

logger = logging.getLogger("email_templates")


class EmailTemplateService:
    def __init__(self, data_store: Optional[DataStore] = None):
        self.data_store = data_store or get_data_store()

    def list_templates(self) -> list[EmailTemplate]:
        return self.data_store.get_email_templates()

    def get_template(self, template_key: str) -> EmailTemplate:
        template = self.data_store.get_email_template_by_key(template_key)
        if not template:
            raise NotFoundError("Email template", template_key)
        return template

    def render_template(self, template_key: str, variables: Mapping[str, Any]) -> RenderedEmail:
        """
        Render a template for sending.

        Raises:
            NotFoundError: unknown key, or the template has been switched off
        """
        template = self.get_template(template_key)
        if not template.is_active:
            raise NotFoundError("Active email template", template_key)

        return RenderedEmail(
            template_key=template_key,
            subject=replace_variables(template.subject_line, variables),
            html=replace_variables(template.html_content, variables),
            text=replace_variables(template.plain_text_content, variables)
            if template.plain_text_content
            else None,
        )

    def preview_template(self, template_key: str) -> RenderedEmail:
        """Render with each declared variable's example value."""
        template = self.get_template(template_key)
        examples = {var.key: var.example for var in template.variables_schema}
        return RenderedEmail(
            template_key=template_key,
            subject=replace_variables(template.subject_line, examples),
            html=replace_variables(template.html_content, examples),
            text=replace_variables(template.plain_text_content, examples)
            if template.plain_text_content
            else None,
        )

    def missing_variables(self, template_key: str, variables: Mapping[str, Any]) -> list[str]:
        template = self.get_template(template_key)
        return [var.key for var in template.variables_schema if var.key not in variables]

    def undeclared_placeholders(self, template: EmailTemplate) -> list[str]:
        """Placeholders used in the content but missing from the variables schema."""
        declared = {var.key for var in template.variables_schema}
        used = find_placeholders(
            "\n".join([template.subject_line, template.html_content, template.plain_text_content or ""])
        )
        return [name for name in used if name not in declared]

    # =========================================================================
    # Editing and versions
    # =========================================================================

    def _snapshot(self, template: EmailTemplate) -> EmailTemplateVersion:
        versions = self.data_store.get_template_versions(template.id)
        next_number = versions[0].version_number + 1 if versions else 1
        version = EmailTemplateVersion(
            id=new_id("tplv"),
            template_id=template.id,
            version_number=next_number,
            subject_line=template.subject_line,
            html_content=template.html_content,
            plain_text_content=template.plain_text_content,
        )
        self.data_store.save("email_template_versions", version)
        return version

    def update_template(
        self,
        template_key: str,
        subject_line: Optional[str] = None,
        html_content: Optional[str] = None,
        plain_text_content: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> EmailTemplate:
        """Apply an edit, keeping the previous content as a new version."""
        template = self.get_template(template_key)

        errors = {}
        if subject_line is not None and not subject_line.strip():
            errors["subject_line"] = "Subject line is required"
        if html_content is not None and not html_content.strip():
            errors["html_content"] = "HTML content is required"
        if errors:
            raise ValidationError(errors)

        version = self._snapshot(template)

        if subject_line is not None:
            template.subject_line = subject_line
        if html_content is not None:
            template.html_content = html_content
        if plain_text_content is not None:
            template.plain_text_content = plain_text_content
        if is_active is not None:
            template.is_active = is_active
        template.updated_at = utcnow()
        self.data_store.save("email_templates", template)

        unknown = self.undeclared_placeholders(template)
        if unknown:
            logger.warning(f"Template {template_key} uses undeclared variables: {unknown}")
        logger.info(f"Updated email template {template_key} (previous saved as v{version.version_number})")
        return template

    def list_versions(self, template_key: str) -> list[EmailTemplateVersion]:
        """Saved versions, newest first."""
        template = self.get_template(template_key)
        return self.data_store.get_template_versions(template.id)

    def restore_version(self, template_key: str, version_number: int) -> EmailTemplate:
        template = self.get_template(template_key)
        for version in self.data_store.get_template_versions(template.id):
            if version.version_number == version_number:
                return self.update_template(
                    template_key,
                    subject_line=version.subject_line,
                    html_content=version.html_content,
                    plain_text_content=version.plain_text_content,
                )
        raise NotFoundError("Email template version", f"{template_key} v{version_number}")
