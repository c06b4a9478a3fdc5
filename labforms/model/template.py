"""Template metadata as loaded from and saved to the persistence boundary."""

from __future__ import annotations

from dataclasses import dataclass, field

from labforms.model.document import PdfDocument
from labforms.model.field import FormField, clone_fields


@dataclass(slots=True)
class TemplateRecord:
    template_id: str
    title: str
    pdf_url: str
    page_count: int
    width: float
    height: float
    fields: list[FormField] = field(default_factory=list)
    is_published: bool = False

    @classmethod
    def from_pdf(
        cls,
        template_id: str,
        title: str,
        pdf_url: str,
        document: PdfDocument,
    ) -> "TemplateRecord":
        width, height = document.page_size(1)
        return cls(
            template_id=template_id,
            title=title,
            pdf_url=pdf_url,
            page_count=document.page_count,
            width=width,
            height=height,
        )

    def duplicate(self, template_id: str, title: str | None = None) -> "TemplateRecord":
        """Unpublished copy of this template whose fields carry fresh ids."""
        return TemplateRecord(
            template_id=template_id,
            title=title if title is not None else f"{self.title} (copy)",
            pdf_url=self.pdf_url,
            page_count=self.page_count,
            width=self.width,
            height=self.height,
            fields=clone_fields(self.fields),
        )
