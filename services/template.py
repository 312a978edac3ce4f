"""Service for handling email templates."""

from typing import Dict, Any

from pathlib import Path


class TemplateService:
    """Loads HTML email templates and fills in `{{PLACEHOLDER}}` values."""

    def __init__(self, templates_dir: Path):
        self.templates_dir = templates_dir

    def load_template(self, template_name: str) -> str:
        """Load email template from file.

        Args:
            template_name (str): The name of the template to load (without extension).

        Raises:
            FileNotFoundError: If the template file is not found.

        Returns:
            str: The content of the email template.
        """
        template_path = self.templates_dir / f"{template_name}.html"

        if not template_path.exists():
            raise FileNotFoundError(f"Template '{template_name}' not found")

        return template_path.read_text(encoding="utf-8")

    def render_template(self, template_name: str, data: Dict[str, Any]) -> str:
        template = self.load_template(template_name)

        for key, value in data.items():
            template = template.replace(f"{{{{{key}}}}}", str(value))

        return template

    def render_verification_email(self, name: str, link: str) -> str:
        return self.render_template("verification_email", {"NAME": name, "LINK": link})

    def render_password_reset_email(self, name: str, link: str) -> str:
        return self.render_template("password_reset_email", {"NAME": name, "LINK": link})
