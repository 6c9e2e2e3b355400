"""
Directive registry for campfire

Maps directive names to DirectiveSpec objects carrying metadata and the
transform handler. Handlers live in lib/handlers, one module per category.
"""

from typing import Callable, Dict, List, Optional

from ..models.directives import DirectiveCategory, DirectiveSpec
from ..models.nodes import DirectiveKind
from .handlers import control, form, i18n, layout, media, navigation, persistence, state, story


LEAF = frozenset({DirectiveKind.LEAF})
CONTAINER = frozenset({DirectiveKind.CONTAINER})
INLINE = frozenset({DirectiveKind.LEAF, DirectiveKind.TEXT})
BLOCK = frozenset({DirectiveKind.LEAF, DirectiveKind.CONTAINER})


class DirectiveRegistry:
    """
    Registry of directive specifications and handlers

    Maps directive names (and aliases) to DirectiveSpec objects.
    """

    def __init__(self) -> None:
        """Initialize the directive registry and register all built-in directives"""
        self.specs: Dict[str, DirectiveSpec] = {}
        self.stateDirectives_register()
        self.controlDirectives_register()
        self.storyDirectives_register()
        self.presentationDirectives_register()
        self.i18nDirectives_register()
        self.persistenceDirectives_register()
        self.navigationDirectives_register()
        self.formDirectives_register()
        self.mediaDirectives_register()

    def register(self, spec: DirectiveSpec) -> None:
        """Register a directive specification"""
        self.specs[spec.name] = spec
        for alias in spec.aliases:
            self.specs[alias] = spec

    def unregister(self, name: str) -> None:
        """Remove a directive; its text falls back to unknown-directive handling"""
        spec = self.specs.pop(name, None)
        if spec is not None and spec.name == name:
            for alias in spec.aliases:
                self.specs.pop(alias, None)

    def get(self, name: str) -> Optional[Callable]:
        """
        Get directive handler by name

        Args:
            name: Directive name to look up

        Returns:
            Handler function or None if not found
        """
        spec = self.specs.get(name)
        return spec.handler if spec is not None else None

    def spec_get(self, name: str) -> Optional[DirectiveSpec]:
        """Get full directive specification by name"""
        return self.specs.get(name)

    def directives_listByCategory(self, category: DirectiveCategory) -> List[DirectiveSpec]:
        """Get all directives in a category, aliases listed once"""
        seen: Dict[str, DirectiveSpec] = {}
        for spec in self.specs.values():
            if spec.category == category:
                seen.setdefault(spec.name, spec)
        return list(seen.values())

    def names_list(self) -> List[str]:
        return sorted(self.specs)

    def stateDirectives_register(self) -> None:
        """Register directives that write game state"""
        self.register(DirectiveSpec(
            name='set',
            category=DirectiveCategory.STATE,
            description='Set one or more keys to typed values',
            handler=state.set_handle,
            kinds=LEAF,
            examples=['::set[hp=10 name="Ann"]', '::set[gold=gold + 5]'],
        ))
        self.register(DirectiveSpec(
            name='setOnce',
            category=DirectiveCategory.STATE,
            description='Set keys and lock them against later writes',
            handler=state.setOnce_handle,
            kinds=LEAF,
            examples=['::setOnce[seed=42]'],
        ))
        self.register(DirectiveSpec(
            name='array',
            category=DirectiveCategory.STATE,
            description='Set a key to an array written in [ ] notation',
            handler=state.array_handle,
            kinds=LEAF,
            examples=["::array[items=[1, 2, 'three']]"],
        ))
        self.register(DirectiveSpec(
            name='arrayOnce',
            category=DirectiveCategory.STATE,
            description='Set and lock an array',
            handler=state.arrayOnce_handle,
            kinds=LEAF,
        ))
        self.register(DirectiveSpec(
            name='createRange',
            category=DirectiveCategory.STATE,
            description='Create a clamped {min, max, value} range',
            handler=state.createRange_handle,
            kinds=LEAF,
            examples=['::createRange[hp=5]{min=0 max=10}'],
        ))
        self.register(DirectiveSpec(
            name='setRange',
            category=DirectiveCategory.STATE,
            description='Update the value of an existing range, clamped',
            handler=state.setRange_handle,
            kinds=LEAF,
            examples=['::setRange[hp=hp.value - 1]'],
        ))
        self.register(DirectiveSpec(
            name='random',
            category=DirectiveCategory.STATE,
            description='Store a random item or integer',
            handler=state.random_handle,
            kinds=LEAF,
            examples=['::random[roll]{min=1 max=6}', "::random[pet]{from=['cat', 'dog']}"],
        ))
        self.register(DirectiveSpec(
            name='randomOnce',
            category=DirectiveCategory.STATE,
            description='Store and lock a random value',
            handler=state.randomOnce_handle,
            kinds=LEAF,
        ))
        for operation, handler in (
            ('push', state.push_handle),
            ('pop', state.pop_handle),
            ('shift', state.shift_handle),
            ('unshift', state.unshift_handle),
            ('splice', state.splice_handle),
            ('concat', state.concat_handle),
        ):
            self.register(DirectiveSpec(
                name=operation,
                category=DirectiveCategory.STATE,
                description=f'Array {operation} on a state key',
                handler=handler,
                kinds=LEAF,
                examples=[f'::{operation}{{key=items value="a, b"}}'],
            ))
        self.register(DirectiveSpec(
            name='unset',
            category=DirectiveCategory.STATE,
            description='Remove a key',
            handler=state.unset_handle,
            kinds=LEAF,
            examples=['::unset[hp]'],
        ))

    def controlDirectives_register(self) -> None:
        """Register conditionals, loops and grouping blocks"""
        self.register(DirectiveSpec(
            name='if',
            category=DirectiveCategory.CONTROL_FLOW,
            description='Render content when an expression is truthy',
            handler=control.if_handle,
            kinds=CONTAINER,
            examples=[':::if[hp > 0]\nAlive\n:::else\nDead\n:::'],
        ))
        self.register(DirectiveSpec(
            name='else',
            category=DirectiveCategory.CONTROL_FLOW,
            description='Alternative branch of an if block',
            handler=control.else_handle,
            kinds=CONTAINER,
        ))
        self.register(DirectiveSpec(
            name='for',
            category=DirectiveCategory.CONTROL_FLOW,
            description='Repeat content for each item of an array or range',
            handler=control.for_handle,
            kinds=CONTAINER,
            examples=[':::for[item in items]\n:show[item]\n:::'],
        ))
        self.register(DirectiveSpec(
            name='switch',
            category=DirectiveCategory.CONTROL_FLOW,
            description='Render the first case equal to an expression',
            handler=control.switch_handle,
            kinds=CONTAINER,
            examples=[':::switch[color]\n:::case["red"]\nStop\n:::\n:::default\nGo\n:::\n:::'],
        ))
        for name in ('case', 'default'):
            self.register(DirectiveSpec(
                name=name,
                category=DirectiveCategory.CONTROL_FLOW,
                description=f'{name} branch; only valid inside a switch',
                handler=control.caseOrphan_handle,
                kinds=CONTAINER,
            ))
        self.register(DirectiveSpec(
            name='batch',
            category=DirectiveCategory.CONTROL_FLOW,
            description='Apply a group of state directives together',
            handler=control.batch_handle,
            kinds=CONTAINER,
            examples=[':::batch\n::set[a=1]\n::push{key=items value=2}\n:::'],
        ))
        self.register(DirectiveSpec(
            name='once',
            category=DirectiveCategory.CONTROL_FLOW,
            description='Render content the first time only',
            handler=control.once_handle,
            kinds=CONTAINER,
            examples=[':::once[intro]\nWelcome!\n:::'],
        ))

    def storyDirectives_register(self) -> None:
        """Register reactive output, presets and event blocks"""
        self.register(DirectiveSpec(
            name='show',
            category=DirectiveCategory.STORY,
            description='Display a state value or expression',
            handler=story.show_handle,
            kinds=INLINE,
            examples=['HP: :show[hp]', ':show[gold * 2]{as="strong"}'],
        ))
        self.register(DirectiveSpec(
            name='preset',
            category=DirectiveCategory.STORY,
            description='Store named attributes for a directive type',
            handler=story.preset_handle,
            examples=['::preset{type="layer" name="hud" x=10 y=20}'],
        ))
        self.register(DirectiveSpec(
            name='onExit',
            category=DirectiveCategory.STORY,
            description='Directives run when the reader leaves the passage',
            handler=story.onExit_handle,
            kinds=CONTAINER,
        ))
        self.register(DirectiveSpec(
            name='effect',
            category=DirectiveCategory.STORY,
            description='Directives run whenever watched keys change',
            handler=story.effect_handle,
            kinds=CONTAINER,
            examples=[':::effect[gold]\n::set[rich=gold > 100]\n:::'],
        ))
        self.register(DirectiveSpec(
            name='trigger',
            category=DirectiveCategory.STORY,
            description='Button whose content runs on activation',
            handler=story.trigger_handle,
            kinds=CONTAINER,
            examples=[':::trigger[Open the door]\n::set[doorOpen=true]\n:::'],
        ))

    def presentationDirectives_register(self) -> None:
        """Register slide deck and positioned layout directives"""
        self.register(DirectiveSpec(
            name='deck',
            category=DirectiveCategory.PRESENTATION,
            description='Slide deck; content is grouped into slides',
            handler=layout.deck_handle,
            kinds=CONTAINER,
            examples=[':::deck{size="16x9"}\n:::slide\nOne\n:::\n:::'],
        ))
        self.register(DirectiveSpec(
            name='slide',
            category=DirectiveCategory.PRESENTATION,
            description='A slide with transitions and a step count',
            handler=layout.slide_handle,
            kinds=CONTAINER,
        ))
        self.register(DirectiveSpec(
            name='reveal',
            category=DirectiveCategory.PRESENTATION,
            description='Content shown from one step to another',
            handler=layout.reveal_handle,
            kinds=CONTAINER,
            examples=[':::reveal{at=1 enter="fade"}\nHello\n:::'],
            aliases=['appear'],
        ))
        self.register(DirectiveSpec(
            name='layer',
            category=DirectiveCategory.PRESENTATION,
            description='Absolutely positioned container',
            handler=layout.layer_handle,
            kinds=CONTAINER,
        ))
        self.register(DirectiveSpec(
            name='wrapper',
            category=DirectiveCategory.PRESENTATION,
            description='Wrap content in a span, div, p or section',
            handler=layout.wrapper_handle,
            kinds=CONTAINER,
        ))
        self.register(DirectiveSpec(
            name='text',
            category=DirectiveCategory.PRESENTATION,
            description='Absolutely positioned text',
            handler=layout.text_handle,
            kinds=CONTAINER,
            examples=[':::text{x=40 y=40 size=32}\nTitle\n:::'],
        ))
        self.register(DirectiveSpec(
            name='shape',
            category=DirectiveCategory.PRESENTATION,
            description='Positioned vector shape',
            handler=layout.shape_handle,
            kinds=INLINE,
            examples=[':shape{type="rect" w=100 h=50 fill="blue"}'],
        ))

    def i18nDirectives_register(self) -> None:
        """Register localization directives"""
        self.register(DirectiveSpec(
            name='lang',
            category=DirectiveCategory.I18N,
            description='Switch the active locale',
            handler=i18n.lang_handle,
            kinds=LEAF,
            examples=['::lang[fr]'],
        ))
        self.register(DirectiveSpec(
            name='translations',
            category=DirectiveCategory.I18N,
            description='Add one translation resource',
            handler=i18n.translations_handle,
            kinds=LEAF,
            examples=['::translations[fr]{ui:greeting="Bonjour"}'],
        ))
        self.register(DirectiveSpec(
            name='t',
            category=DirectiveCategory.I18N,
            description='Translated text',
            handler=i18n.t_handle,
            kinds=INLINE,
            examples=[':t[ui:greeting]', ':t[apples]{count=3}'],
        ))

    def persistenceDirectives_register(self) -> None:
        """Register save slot and checkpoint directives"""
        for name, handler, description in (
            ('save', persistence.save_handle, 'Write the game state to a save slot'),
            ('load', persistence.load_handle, 'Restore the game state from a save slot'),
            ('clearSave', persistence.clearSave_handle, 'Delete a save slot'),
            ('checkpoint', persistence.checkpoint_handle, 'Snapshot the state as the passage checkpoint'),
            ('loadCheckpoint', persistence.loadCheckpoint_handle, 'Restore a checkpoint'),
            ('clearCheckpoint', persistence.clearCheckpoint_handle, 'Remove checkpoints'),
        ):
            self.register(DirectiveSpec(
                name=name,
                category=DirectiveCategory.PERSISTENCE,
                description=description,
                handler=handler,
                kinds=LEAF,
            ))

    def navigationDirectives_register(self) -> None:
        """Register passage navigation directives"""
        self.register(DirectiveSpec(
            name='goto',
            category=DirectiveCategory.NAVIGATION,
            description='Move to another passage after this pass',
            handler=navigation.goto_handle,
            kinds=LEAF,
            examples=['::goto["Cave"]', '::goto[12]'],
        ))
        self.register(DirectiveSpec(
            name='title',
            category=DirectiveCategory.NAVIGATION,
            description='Override the passage title',
            handler=navigation.title_handle,
            kinds=LEAF,
            examples=['::title["Chapter One"]'],
        ))
        self.register(DirectiveSpec(
            name='include',
            category=DirectiveCategory.NAVIGATION,
            description="Insert another passage's content",
            handler=navigation.include_handle,
            kinds=LEAF,
            examples=['::include["Inventory"]'],
        ))
        self.register(DirectiveSpec(
            name='allowLandscape',
            category=DirectiveCategory.NAVIGATION,
            description='Toggle or set whether landscape orientation is allowed',
            handler=navigation.allowLandscape_handle,
            kinds=LEAF,
            examples=['::allowLandscape', '::allowLandscape[false]'],
        ))

    def formDirectives_register(self) -> None:
        """Register form elements bound to state keys"""
        for name, handler, description, examples in (
            ('input', form.input_handle, 'Text input bound to a state key',
             [':input[name]{placeholder="Your name"}']),
            ('textarea', form.textarea_handle, 'Multi-line input bound to a state key',
             [':textarea[notes]']),
            ('checkbox', form.checkbox_handle, 'Checkbox bound to a boolean key',
             [':checkbox[agree]{checked}']),
            ('radio', form.radio_handle, 'Radio button of the group bound to a key',
             [':radio[color]{value="red" checked}']),
        ):
            self.register(DirectiveSpec(
                name=name,
                category=DirectiveCategory.FORM,
                description=description,
                handler=handler,
                examples=examples,
            ))
        self.register(DirectiveSpec(
            name='select',
            category=DirectiveCategory.FORM,
            description='Drop-down bound to a state key',
            handler=form.select_handle,
            kinds=CONTAINER,
            examples=[':::select[color]\n::option{value="red" label="Red"}\n:::'],
        ))
        self.register(DirectiveSpec(
            name='option',
            category=DirectiveCategory.FORM,
            description='Choice of a select',
            handler=form.option_handle,
            kinds=BLOCK,
            examples=['::option{value="red" label="Red"}'],
        ))

    def mediaDirectives_register(self) -> None:
        """Register audio and image directives handed to the host"""
        for name, handler, description, examples in (
            ('preloadAudio', media.preload_handle, 'Cache an audio track',
             ['::preloadAudio[theme]{src="audio/theme.mp3"}']),
            ('preloadImage', media.preload_handle, 'Cache an image',
             ['::preloadImage[map]{src="img/map.png"}']),
            ('sound', media.sound_handle, 'Play a sound effect',
             ['::sound[door]{volume=0.5}']),
            ('bgm', media.bgm_handle, 'Start or stop background music',
             ['::bgm[theme]{fade=1000}', '::bgm{stop}']),
            ('volume', media.volume_handle, 'Set music and effect volumes',
             ['::volume{bgm=0.4 sfx=0.8}']),
        ):
            self.register(DirectiveSpec(
                name=name,
                category=DirectiveCategory.MEDIA,
                description=description,
                handler=handler,
                kinds=LEAF,
                examples=examples,
            ))
