"""
Passage rendering engine

Glues the pipeline together:

    source --scan/normalize--> Parser --> Transformer --> render tree
                                             |
                                   StateManager (pass scope)
                                             |
                          commit --> GameStateStore --> deferred ops

A pass either completes, in which case its state changes are merged into
the store in one step and its deferred store operations (checkpoints,
saves, loads) run in document order, or it is cancelled and leaves the
store untouched.

Example:
    >>> engine = Engine()
    >>> result = engine.render('::set[hp=3]\\nHP: ${hp}', passage_id='start')
    >>> result.root.text_collect()
    'HP: 3'
"""

import random
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ..config import appsettings
from ..config.settings import AppSettings
from ..models.nodes import Node, RenderNode, node_fromDict
from .deck import DeckNavigator
from .directives import DirectiveRegistry
from .expression import Evaluator
from .gamestate import GameStateStore
from .i18n import MemoryTranslator, Translator
from .log import LOG
from .parser import Parser
from .scanner import indentation_normalize
from .storage import MemoryStorage, Storage
from .transformer import PassContext, TransformCancelled, Transformer


class ValidationFailed(RuntimeError):
    """A strict-mode pass recorded validation errors"""

    def __init__(self, errors: Sequence[str]):
        super().__init__("; ".join(errors))
        self.errors = list(errors)


@dataclass
class RenderResult:
    """
    Outcome of one pass

    Attributes:
        root: Render tree ("root" element)
        errors: Errors recorded by the pass and its deferred operations
        nextPassageId: Passage requested by goto or load
        title: Title set by the title directive
        allowLandscape: Whether the host may show landscape orientation
    """
    root: RenderNode
    errors: List[str] = field(default_factory=list)
    nextPassageId: Optional[str] = None
    title: Optional[str] = None
    allowLandscape: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'root': self.root.to_dict(),
            'errors': list(self.errors),
            'nextPassageId': self.nextPassageId,
            'title': self.title,
            'allowLandscape': self.allowLandscape,
        }


class Engine:
    """
    Runs transformation passes against a shared game state

    Args:
        store: Game state shared by every pass
        navigator: Deck navigation state machine
        translator: Localization collaborator
        storage: Save slot storage
        passages: Passage name/id -> source text
        settings: Application settings
        registry: Directive registry (the built-in one when omitted)
        rng: Random source handed to random directives
    """

    def __init__(
        self,
        store: Optional[GameStateStore] = None,
        navigator: Optional[DeckNavigator] = None,
        translator: Optional[Translator] = None,
        storage: Optional[Storage] = None,
        passages: Optional[Mapping[str, str]] = None,
        settings: Optional[AppSettings] = None,
        registry: Optional[DirectiveRegistry] = None,
        rng: Optional[random.Random] = None,
    ):
        self.store = store if store is not None else GameStateStore()
        self.navigator = navigator if navigator is not None else DeckNavigator()
        self.translator = translator if translator is not None else MemoryTranslator()
        self.storage = storage if storage is not None else MemoryStorage()
        self.passages: Dict[str, str] = dict(passages or {})
        self.settings = settings if settings is not None else appsettings
        self.registry = registry if registry is not None else DirectiveRegistry()
        self.rng = rng if rng is not None else random.Random()
        self.evaluator = Evaluator(self.settings.expression_cache_size)
        self.presets: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.allowLandscape = False

    def transformer_make(self, passage_id: Optional[str], cancel: Optional[Callable[[], bool]]) -> Transformer:
        transformer = Transformer(
            self.registry,
            state=self.store.stateManager_create(),
            evaluator=self.evaluator,
            translator=self.translator,
            navigator=self.navigator,
            passages=self.passages,
            settings=self.settings,
            rng=self.rng,
            cancel=cancel,
            context=PassContext(passage_id=passage_id, allow_landscape=self.allowLandscape),
            storage=self.storage,
        )
        transformer.presets = self.presets
        return transformer

    def pass_commit(self, transformer: Transformer, root: RenderNode) -> RenderResult:
        """
        Merge a completed pass into the store and run its deferred operations.

        Raises:
            ValidationFailed: in strict mode, before anything is committed
        """
        context = transformer.context
        if self.settings.strict_mode and context.errors:
            raise ValidationFailed(context.errors)
        start = len(self.store.errors)
        self.store.changes_commit(transformer.state.changes_get(), context.errors)
        if context.passage_id is not None:
            self.store.currentPassageId = context.passage_id
        self.allowLandscape = context.allow_landscape
        next_passage = context.next_passage_id
        for operation in context.deferred:
            target = operation(self.store)
            if target:
                next_passage = target
        return RenderResult(
            root=root,
            errors=self.store.errors[start:],
            nextPassageId=next_passage,
            title=context.title,
            allowLandscape=self.allowLandscape,
        )

    def render(
        self,
        source: str,
        passage_id: Optional[str] = None,
        cancel: Optional[Callable[[], bool]] = None,
    ) -> RenderResult:
        """
        Run one pass over a passage.

        Args:
            source: Passage markup
            passage_id: Passage being rendered; becomes the store's current passage
            cancel: Polled between nodes; returning True abandons the pass

        Returns:
            RenderResult of the committed pass

        Raises:
            TransformCancelled: the pass was abandoned; nothing was committed
            ValidationFailed: strict mode and the pass recorded errors
            StructuralError: a handler produced something that is not a node
        """
        tree = Parser(indentation_normalize(source)).parse()
        transformer = self.transformer_make(passage_id, cancel)
        try:
            transformer.tree_transform(tree)
        except TransformCancelled:
            LOG(f"render: pass over '{passage_id}' cancelled, nothing committed", level=2)
            raise
        root = transformer.tree_render(tree)
        return self.pass_commit(transformer, root)

    def passage_render(self, name: str, cancel: Optional[Callable[[], bool]] = None) -> RenderResult:
        """Render a registered passage by name or id"""
        source = self.passages.get(name)
        if source is None:
            self.store.error_add(f"Passage not found: {name}")
            return RenderResult(root=RenderNode(tag='root'), errors=[f"Passage not found: {name}"])
        return self.render(source, passage_id=name, cancel=cancel)

    def block_run(
        self,
        content: Union[str, Sequence[Union[Dict[str, Any], Node]]],
        passage_id: Optional[str] = None,
    ) -> RenderResult:
        """
        Run a serialized block (onExit, effect or trigger content) as a pass.

        Args:
            content: Markup source, or the node dicts carried in a
                     `content` prop
            passage_id: Passage the block belongs to
        """
        if isinstance(content, str):
            nodes: List[Node] = Parser(indentation_normalize(content)).parse().children
        else:
            nodes = [node_fromDict(item) if isinstance(item, dict) else item for item in content]
        transformer = self.transformer_make(passage_id or self.store.currentPassageId, None)
        processed = transformer.block_run(nodes)
        root = transformer.tree_render(Node(type='root', children=processed))
        return self.pass_commit(transformer, root)
