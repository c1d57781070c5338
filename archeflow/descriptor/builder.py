"""Build typed DescriptorDocuments from parse trees.

Structural problems (unknown elements, missing required attributes, bad
attribute values) raise DescriptorLoadError with the element location.
Semantic checks (paths, expressions, ids) are left to the validator, which
sees the whole compiled archetype.
"""

from ..core.models import (
    DEFAULT_MODEL_ORDER,
    Choice,
    DescriptorDocument,
    FileEntry,
    FileSet,
    Include,
    Invoke,
    ModelList,
    ModelMap,
    ModelValue,
    OptionInput,
    Output,
    Preset,
    PresetBlock,
    Replacement,
    SelectInput,
    Step,
    TextInput,
    Transformation,
)
from ..errors import DescriptorLoadError
from .xml_reader import ParsedElement, ParseTree

ROOT_TAG = "archetype-flow"

_INPUT_TYPES = {"text": TextInput, "option": OptionInput, "select": SelectInput}

# Child elements allowed under each flow container
_STEP_CHILDREN = {"help", "flow-input", "flow-invoke", "flow-include", "flow-context", "output"}
_INPUT_CHILDREN = _STEP_CHILDREN | {"flow-step"}
_ROOT_CHILDREN = {"flow-step", "flow-input", "flow-invoke", "flow-include", "flow-context", "output"}


class _Builder:
    def __init__(self, tree: ParseTree):
        self.tree = tree

    def fail(self, element: ParsedElement, message: str) -> DescriptorLoadError:
        return DescriptorLoadError(
            f"{message} at {self.tree.location(element)}", str(self.tree.source)
        )

    def required(self, element: ParsedElement, name: str) -> str:
        value = element.get(name)
        if value is None or not value.strip():
            raise self.fail(element, f"<{element.tag}> requires attribute '{name}'")
        return value.strip()

    def boolean(self, element: ParsedElement, name: str, default: bool = False) -> bool:
        raw = element.get(name)
        if raw is None:
            return default
        lowered = raw.strip().lower()
        if lowered not in ("true", "false"):
            raise self.fail(element, f"attribute '{name}' must be true or false, got '{raw}'")
        return lowered == "true"

    def integer(self, element: ParsedElement, name: str, default: int) -> int:
        raw = element.get(name)
        if raw is None:
            return default
        try:
            return int(raw.strip())
        except ValueError:
            raise self.fail(element, f"attribute '{name}' must be an integer, got '{raw}'")

    # -------------------------------------------------------------------------
    # Document and flow nodes
    # -------------------------------------------------------------------------

    def document(self) -> DescriptorDocument:
        root = self.tree.root
        if root.tag != ROOT_TAG:
            raise self.fail(root, f"expected root element <{ROOT_TAG}>, found <{root.tag}>")
        children, outputs, presets, _ = self.container(root, _ROOT_CHILDREN)
        return DescriptorDocument(
            source=str(self.tree.source),
            name=root.get("name"),
            common_prefix=root.get("common-prefix"),
            children=tuple(children),
            outputs=tuple(outputs),
            presets=tuple(presets),
        )

    def container(self, element: ParsedElement, allowed: set[str]):
        """Split an element's children into flow children, outputs, presets and help."""
        children: list = []
        outputs: list[Output] = []
        presets: list[PresetBlock] = []
        help_text: str | None = None
        for child in self.tree.children(element):
            if child.tag not in allowed:
                raise self.fail(child, f"unexpected element <{child.tag}> in <{element.tag}>")
            if child.tag == "help":
                help_text = child.text or None
            elif child.tag == "output":
                outputs.append(self.output(child))
            elif child.tag == "flow-context":
                presets.append(self.preset_block(child))
            elif child.tag == "flow-invoke":
                children.append(Invoke(src=self.required(child, "src")))
            elif child.tag == "flow-include":
                children.append(Include(src=self.required(child, "src")))
            elif child.tag == "flow-step":
                children.append(self.step(child))
            elif child.tag == "flow-input":
                children.append(self.input(child))
            elif child.tag == "flow-option":
                children.append(self.choice(child))
        return children, outputs, presets, help_text

    def common(self, element: ParsedElement, allowed: set[str]) -> dict:
        children, outputs, presets, help_text = self.container(element, allowed)
        return {
            "id": self.required(element, "id"),
            "label": element.get("label"),
            "help": help_text,
            "condition": element.get("if"),
            "children": tuple(children),
            "outputs": tuple(outputs),
            "presets": tuple(presets),
        }

    def step(self, element: ParsedElement) -> Step:
        return Step(
            optional=self.boolean(element, "optional"),
            **self.common(element, _STEP_CHILDREN),
        )

    def input(self, element: ParsedElement):
        input_type = self.required(element, "type")
        cls = _INPUT_TYPES.get(input_type)
        if cls is None:
            raise self.fail(
                element,
                f"unknown input type '{input_type}' (expected one of {', '.join(_INPUT_TYPES)})",
            )
        allowed = _INPUT_CHILDREN | {"flow-option"} if cls is SelectInput else _INPUT_CHILDREN
        fields = self.common(element, allowed)
        fields["default"] = element.get("default")
        fields["optional"] = self.boolean(element, "optional")
        if cls is SelectInput:
            fields["multiple"] = self.boolean(element, "multiple")
        elif element.get("multiple") is not None:
            raise self.fail(element, "'multiple' is only valid on select inputs")
        return cls(**fields)

    def choice(self, element: ParsedElement) -> Choice:
        return Choice(**self.common(element, _INPUT_CHILDREN))

    def preset_block(self, element: ParsedElement) -> PresetBlock:
        presets = []
        for child in self.tree.children(element):
            if child.tag != "preset":
                raise self.fail(child, f"unexpected element <{child.tag}> in <flow-context>")
            value = child.get("value")
            if value is None:
                value = child.text
            presets.append(Preset(path=self.required(child, "path"), value=value))
        return PresetBlock(condition=element.get("if"), presets=tuple(presets))

    # -------------------------------------------------------------------------
    # Outputs
    # -------------------------------------------------------------------------

    def output(self, element: ParsedElement) -> Output:
        transformations: list[Transformation] = []
        file_sets: list[FileSet] = []
        files: list[FileEntry] = []
        model: list = []
        for child in self.tree.children(element):
            if child.tag == "transformation":
                transformations.append(self.transformation(child))
            elif child.tag in ("files", "templates"):
                file_sets.append(self.file_set(child))
            elif child.tag in ("file", "template"):
                files.append(
                    FileEntry(
                        kind=child.tag,
                        source=self.required(child, "source"),
                        target=self.required(child, "target"),
                        condition=child.get("if"),
                        engine=child.get("engine"),
                    )
                )
            elif child.tag == "model":
                model.extend(self.model_entry(c, keyed=True) for c in self.tree.children(child))
            else:
                raise self.fail(child, f"unexpected element <{child.tag}> in <output>")
        return Output(
            condition=element.get("if"),
            transformations=tuple(transformations),
            file_sets=tuple(file_sets),
            files=tuple(files),
            model=tuple(model),
        )

    def transformation(self, element: ParsedElement) -> Transformation:
        replacements = []
        for child in self.tree.children(element):
            if child.tag != "replace":
                raise self.fail(child, f"unexpected element <{child.tag}> in <transformation>")
            replacement = child.get("replacement")
            if replacement is None:
                raise self.fail(child, "<replace> requires attribute 'replacement'")
            replacements.append(
                Replacement(regex=self.required(child, "regex"), replacement=replacement)
            )
        return Transformation(id=self.required(element, "id"), replacements=tuple(replacements))

    def file_set(self, element: ParsedElement) -> FileSet:
        directory = None
        includes: list[str] = []
        excludes: list[str] = []
        for child in self.tree.children(element):
            if child.tag == "directory":
                directory = child.text
            elif child.tag == "includes":
                includes.extend(self.patterns(child, "include"))
            elif child.tag == "excludes":
                excludes.extend(self.patterns(child, "exclude"))
            else:
                raise self.fail(child, f"unexpected element <{child.tag}> in <{element.tag}>")
        if not directory:
            raise self.fail(element, f"<{element.tag}> requires a <directory>")
        refs = element.get("transformations") or ""
        return FileSet(
            kind=element.tag,
            directory=directory,
            includes=tuple(includes),
            excludes=tuple(excludes),
            transformations=tuple(r.strip() for r in refs.split(",") if r.strip()),
            condition=element.get("if"),
            engine=element.get("engine") if element.tag == "templates" else None,
        )

    def patterns(self, element: ParsedElement, tag: str) -> list[str]:
        found = []
        for child in self.tree.children(element):
            if child.tag != tag or not child.text:
                raise self.fail(child, f"expected non-empty <{tag}> in <{element.tag}>")
            found.append(child.text)
        return found

    def model_entry(self, element: ParsedElement, keyed: bool):
        key = element.get("key")
        if keyed and not key:
            raise self.fail(element, f"<{element.tag}> inside <model> or <map> requires 'key'")
        common = {
            "key": key,
            "order": self.integer(element, "order", DEFAULT_MODEL_ORDER),
            "condition": element.get("if"),
        }
        if element.tag == "value":
            file_ref = element.get("file")
            if file_ref and element.text:
                raise self.fail(element, "<value> cannot have both 'file' and text content")
            return ModelValue(
                text=element.text,
                file=file_ref,
                template=element.get("template"),
                override=self.boolean(element, "override"),
                **common,
            )
        if element.tag == "list":
            items = tuple(self.model_entry(c, keyed=False) for c in self.tree.children(element))
            return ModelList(items=items, **common)
        if element.tag == "map":
            entries = tuple(self.model_entry(c, keyed=True) for c in self.tree.children(element))
            return ModelMap(entries=entries, **common)
        raise self.fail(element, f"unexpected element <{element.tag}> in model")


def build_document(tree: ParseTree) -> DescriptorDocument:
    """Convert a parse tree into an immutable DescriptorDocument.

    Raises:
        DescriptorLoadError: On structural problems, with the element location
    """
    return _Builder(tree).document()
