"""
Handler for Argo parameter, artifact and step/task output expressions.

Also recognises the name token of a step or DAG task definition, so that
hovering a step name shows its template and find-references lists every
``{{steps.<name>.outputs...}}`` use.
"""
from __future__ import annotations

import re

from lsprotocol import types as lsp

from argolsp.document import Document
from argolsp.features.argo_templates import enclosing_template, find_template_definitions
from argolsp.features.parameters import (
    LOCAL_TYPES, ParameterReference, find_all_parameter_references, find_artifact_definitions,
    find_parameter_definitions, find_parameter_reference_at, find_script_in_template,
)
from argolsp.features.steps import find_step_definition_at, find_step_or_task
from argolsp.features.workflow_variables import find_workflow_parameter, iter_list_names
from argolsp.references.formatters import build_description
from argolsp.references.handler import HandlerSupports, ReferenceHandler, location, unresolved
from argolsp.references.handlers.workflow_variable import workflow_parameter_hover
from argolsp.references.types import (
    DetectedReference, ParameterDetails, ResolvedReference, StepDetails, make_range, range_contains,
)

_COMPLETION_CONTEXTS = (
    ('inputs.parameters', re.compile(r'\{\{\s*inputs\.parameters\.\w*$')),
    ('outputs.parameters', re.compile(r'\{\{\s*outputs\.parameters\.\w*$')),
    ('workflow.parameters', re.compile(r'\{\{\s*workflow\.parameters\.\w*$')),
    ('inputs.artifacts', re.compile(r'\{\{\s*inputs\.artifacts\.\w*$')),
    ('outputs.artifacts', re.compile(r'\{\{\s*outputs\.artifacts\.\w*$')),
)

_IO_LABELS = {'input': 'Input', 'output': 'Output'}


def _category(ref_type: str) -> str:
    """``inputs`` / ``outputs`` / ``workflow`` / ``steps`` / ``tasks``."""
    return ref_type.split('.', 1)[0]


class ArgoParameterHandler(ReferenceHandler):
    kind = 'argoParameter'
    supports = HandlerSupports(definition=True, hover=True, completion=True, diagnostic=True)

    def _detected(self, ref: ParameterReference) -> DetectedReference:
        return DetectedReference(self.kind, ref.range, ParameterDetails(
            ref.type, ref.parameter_name, ref.step_or_task_name))

    def detect(self, doc: Document, pos: lsp.Position) -> DetectedReference | None:
        ref = find_parameter_reference_at(doc.lines, pos)
        if ref is not None:
            return self._detected(ref)
        step = find_step_definition_at(doc.lines, pos)
        if step is not None:
            return DetectedReference(self.kind, step.range, StepDetails(step.type, step.name))
        return None

    def find_all(self, doc: Document) -> list[DetectedReference]:
        return [self._detected(ref) for ref in find_all_parameter_references(doc.lines)
                if ref.type in LOCAL_TYPES]

    async def resolve(self, doc: Document, detected: DetectedReference) -> ResolvedReference:
        details = detected.details
        if isinstance(details, StepDetails):
            return self._resolve_step(doc, detected, details)
        if details.type in ('inputs.parameters', 'outputs.parameters'):
            return self._resolve_local_parameter(doc, detected, details)
        if details.type in ('inputs.artifacts', 'outputs.artifacts'):
            return self._resolve_local_artifact(doc, detected, details)
        if details.type == 'workflow.parameters':
            return self._resolve_workflow_parameter(doc, detected, details)
        if details.type.endswith('.outputs.parameters'):
            return self._resolve_step_output(doc, detected, details, artifact=False)
        if details.type.endswith('.outputs.artifacts'):
            return self._resolve_step_output(doc, detected, details, artifact=True)
        if details.type.endswith('.outputs.result'):
            return self._resolve_step_result(doc, detected, details)
        return unresolved(detected)

    # ------------------------------------------------------------------
    # Local inputs/outputs
    # ------------------------------------------------------------------

    @staticmethod
    def _scope(doc: Document, line_no: int):
        """Templates visible from *line_no*: the enclosing one, else all of them."""
        templates = find_template_definitions(doc.lines, doc.uri)
        current = enclosing_template(doc.lines, templates, line_no)
        return [current] if current is not None else templates

    def _resolve_local_parameter(self, doc: Document, detected: DetectedReference,
                                 details: ParameterDetails) -> ResolvedReference:
        io_type = 'input' if details.type == 'inputs.parameters' else 'output'
        scope = self._scope(doc, detected.range.start.line)
        for param in find_parameter_definitions(doc.lines, scope):
            if param.name != details.parameter_name or param.type != io_type:
                continue
            parts = [f'**Parameter**: `{param.name}`', f'**Type**: {_IO_LABELS[io_type]} Parameter']
            if param.value:
                parts.append(f'**Default**: `{param.value}`')
            description = build_description(param.above_comment, param.inline_comment)
            if description:
                parts += ['', description]
            value_note = build_description(param.value_above_comment, param.value_inline_comment)
            if value_note:
                parts += ['', f'**Value Note**: {value_note}']
            return ResolvedReference(
                detected=detected,
                definition_location=location(doc.uri, param.range),
                hover_markdown='  \n'.join(parts),
                exists=True,
            )
        return ResolvedReference(
            detected=detected,
            diagnostic_message=f"Parameter '{details.parameter_name}' not found in {io_type} parameters",
            exists=False,
        )

    def _resolve_local_artifact(self, doc: Document, detected: DetectedReference,
                                details: ParameterDetails) -> ResolvedReference:
        io_type = 'input' if details.type == 'inputs.artifacts' else 'output'
        scope = self._scope(doc, detected.range.start.line)
        for artifact in find_artifact_definitions(doc.lines, scope):
            if artifact.name != details.parameter_name or artifact.type != io_type:
                continue
            parts = [f'**{_IO_LABELS[io_type]} Artifact**: `{artifact.name}`']
            if artifact.path:
                parts.append(f'**Path**: `{artifact.path}`')
            description = build_description(artifact.above_comment, artifact.inline_comment)
            if description:
                parts += ['', description]
            return ResolvedReference(
                detected=detected,
                definition_location=location(doc.uri, artifact.range),
                hover_markdown='  \n'.join(parts),
                exists=True,
            )
        return ResolvedReference(
            detected=detected,
            diagnostic_message=f"Artifact '{details.parameter_name}' not found in {io_type} artifacts",
            exists=False,
        )

    # ------------------------------------------------------------------
    # Workflow arguments and step/task outputs
    # ------------------------------------------------------------------

    def _resolve_workflow_parameter(self, doc: Document, detected: DetectedReference,
                                    details: ParameterDetails) -> ResolvedReference:
        found = find_workflow_parameter(doc.lines, details.parameter_name)
        hover = workflow_parameter_hover(doc.lines, details.parameter_name)
        if found is None:
            # May be supplied at submit time
            return ResolvedReference(detected=detected, hover_markdown=hover)
        return ResolvedReference(
            detected=detected,
            definition_location=location(doc.uri, found[0]),
            hover_markdown=hover,
            exists=True,
        )

    @staticmethod
    def _step_template(doc: Document, details: ParameterDetails):
        kind = 'step' if details.type.startswith('steps.') else 'task'
        if not details.step_or_task_name:
            return kind, None, None
        step = find_step_or_task(doc.lines, kind, details.step_or_task_name)
        if step is None:
            return kind, None, None
        for template in find_template_definitions(doc.lines, doc.uri):
            if template.name == step.template_name:
                return kind, step, template
        return kind, step, None

    def _resolve_step_output(self, doc: Document, detected: DetectedReference,
                             details: ParameterDetails, artifact: bool) -> ResolvedReference:
        kind, step, template = self._step_template(doc, details)
        if step is None or template is None:
            return unresolved(detected)
        finder = find_artifact_definitions if artifact else find_parameter_definitions
        for found in finder(doc.lines, [template]):
            if found.name != details.parameter_name or found.type != 'output':
                continue
            noun = 'Artifact' if artifact else 'Parameter'
            label = kind.capitalize()
            parts = [
                f'**{noun}**: `{details.parameter_name}`',
                f'**Type**: {label} Output {noun}',
                f'**{label}**: `{details.step_or_task_name}`',
                f'**Template**: `{step.template_name}`',
            ]
            if artifact and found.path:
                parts.append(f'**Path**: `{found.path}`')
            description = build_description(found.above_comment, found.inline_comment)
            if description:
                parts += ['', description]
            return ResolvedReference(
                detected=detected,
                definition_location=location(doc.uri, found.range),
                hover_markdown='  \n'.join(parts),
                exists=True,
            )
        return unresolved(detected)

    def _resolve_step_result(self, doc: Document, detected: DetectedReference,
                             details: ParameterDetails) -> ResolvedReference:
        kind, step, template = self._step_template(doc, details)
        if step is None or template is None:
            return unresolved(detected)
        script = find_script_in_template(doc.lines, template)
        parts = [
            '**Script Result**: `outputs.result`',
            f'**{kind.capitalize()}**: `{details.step_or_task_name}`',
            f'**Template**: `{step.template_name}`',
        ]
        if script is not None and script.language:
            parts.append(f'**Language**: `{script.language}`')
        parts += ['', '*The `result` output captures the last line of stdout*']
        definition = None
        if script is not None:
            definition = location(doc.uri, make_range(script.line, 0, len(doc.line(script.line))))
        return ResolvedReference(
            detected=detected,
            definition_location=definition,
            hover_markdown='  \n'.join(parts),
            exists=True if script is not None else None,
        )

    def _resolve_step(self, doc: Document, detected: DetectedReference,
                      details: StepDetails) -> ResolvedReference:
        step = find_step_or_task(doc.lines, details.type, details.name)
        if step is None:
            return unresolved(detected)
        label = details.type.capitalize()
        parts = [f'**{label}**: `{step.name}`', f'**Template**: `{step.template_name}`']
        definition = None
        for template in find_template_definitions(doc.lines, doc.uri):
            if template.name == step.template_name:
                definition = location(doc.uri, template.range)
                description = build_description(template.above_comment, template.inline_comment)
                if description:
                    parts += ['', description]
                break
        return ResolvedReference(
            detected=detected,
            definition_location=definition,
            hover_markdown='  \n'.join(parts),
            exists=True,
        )

    # ------------------------------------------------------------------
    # Completion and references
    # ------------------------------------------------------------------

    def complete(self, doc: Document, pos: lsp.Position) -> list[lsp.CompletionItem] | None:
        prefix = doc.line(pos.line)[:pos.character]
        context = next((name for name, pattern in _COMPLETION_CONTEXTS if pattern.search(prefix)), None)
        if context is None:
            return None

        scope = self._scope(doc, pos.line)
        if context.endswith('.artifacts'):
            io_type = 'input' if context.startswith('inputs') else 'output'
            return [
                lsp.CompletionItem(
                    label=a.name,
                    kind=lsp.CompletionItemKind.File,
                    detail=f'{_IO_LABELS[io_type]} Artifact',
                    documentation=f'Path: {a.path}' if a.path else None,
                    insert_text=a.name,
                )
                for a in find_artifact_definitions(doc.lines, scope) if a.type == io_type
            ]

        if context == 'workflow.parameters':
            return self._workflow_parameter_items(doc)

        io_type = 'input' if context.startswith('inputs') else 'output'
        items = []
        for p in find_parameter_definitions(doc.lines, scope):
            if p.type != io_type:
                continue
            notes = [p.above_comment, p.inline_comment, f'Default: {p.value}' if p.value else None]
            items.append(lsp.CompletionItem(
                label=p.name,
                kind=lsp.CompletionItemKind.Variable,
                detail=f'{_IO_LABELS[io_type]} Parameter',
                documentation='\n\n'.join(n for n in notes if n) or None,
                insert_text=p.name,
            ))
        return items

    @staticmethod
    def _workflow_parameter_items(doc: Document) -> list[lsp.CompletionItem]:
        items = []
        seen = set()
        for _line, name, _indent in iter_list_names(doc.lines, 'arguments', 'parameters'):
            if name in seen:
                continue
            seen.add(name)
            found = find_workflow_parameter(doc.lines, name)
            items.append(lsp.CompletionItem(
                label=name,
                kind=lsp.CompletionItemKind.Variable,
                detail='Workflow Parameter',
                documentation=found[1].get('description') if found else None,
                insert_text=name,
            ))
        return items

    def find_references(self, doc: Document, pos: lsp.Position,
                        documents: list[Document]) -> list[lsp.Location]:
        ref = find_parameter_reference_at(doc.lines, pos)
        if ref is not None:
            name, category, step_name = ref.parameter_name, _category(ref.type), ref.step_or_task_name
        else:
            step = find_step_definition_at(doc.lines, pos)
            if step is not None:
                name, category, step_name = None, f'{step.type}s', step.name
            else:
                name = step_name = None
                category = None
                for param in find_parameter_definitions(doc.lines):
                    if range_contains(param.range, pos):
                        name, category = param.name, f'{param.type}s'
                        break
                if name is None:
                    return []

        locations = []
        for other in documents:
            for found in find_all_parameter_references(other.lines):
                if _category(found.type) != category:
                    continue
                if name is not None and found.parameter_name != name:
                    continue
                if step_name is not None and found.step_or_task_name != step_name:
                    continue
                locations.append(location(other.uri, found.range))
        return locations
