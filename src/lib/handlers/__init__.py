"""
Directive handlers, one module per category

state        ::set, ::array, ::createRange, ::random, array operations, ::unset
control      :::if/else, :::for, :::switch, :::batch, :::once
story        :show, ::preset, :::onExit, :::effect, :::trigger
layout       :::deck, :::slide, :::reveal, :::layer, :::wrapper, :::text, :shape
i18n         ::lang, ::translations, :t
persistence  ::save, ::load, ::clearSave, ::checkpoint, ::loadCheckpoint, ::clearCheckpoint
navigation   ::goto, ::title, ::include, ::allowLandscape
form         :input, :textarea, :checkbox, :radio, :::select, ::option
media        ::preloadAudio, ::preloadImage, ::sound, ::bgm, ::volume

Every handler has the signature

    handler(directive, parent, index, transformer) -> Optional[int]

and is registered with DirectiveRegistry in lib/directives.py.
"""
