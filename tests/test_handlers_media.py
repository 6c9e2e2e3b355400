"""
Media directive tests

Tests the sound, bgm, volume and preload elements handed to the host.
"""

from campfire.lib.engine import Engine
from campfire.lib.gamestate import GameStateStore


def render(source, data=None):
    engine = Engine(store=GameStateStore(data or {}))
    return engine.render(source, passage_id="test")


def element(result, tag):
    found = result.root.find_all(tag)
    assert len(found) == 1
    return found[0]


class TestSound:
    """Test sound effects"""

    def test_label_id(self):
        """The label names the track; volume and delay are numbers"""
        result = render("::sound[door]{volume=0.5 delay=200}")
        assert element(result, "sound").props == {"id": "door", "volume": 0.5, "delay": 200}

    def test_src_only(self):
        """Without an id the source doubles as one"""
        result = render('::sound{src="sfx/door.mp3"}')
        assert element(result, "sound").props == {"id": "sfx/door.mp3", "src": "sfx/door.mp3"}

    def test_volume_clamped(self):
        """Volumes stay within 0 and 1"""
        result = render("::sound[door]{volume=3}")
        assert element(result, "sound").props["volume"] == 1

    def test_volume_expression(self):
        """Unquoted values are evaluated against state"""
        result = render("::sound[door]{volume=level}", {"level": 0.25})
        assert element(result, "sound").props["volume"] == 0.25

    def test_requires_track(self):
        """A sound with neither id nor src is reported"""
        result = render("::sound")
        assert result.errors == ["sound directive requires id or src"]
        assert result.root.find_all("sound") == []

    def test_leaf_only(self):
        """Container sounds are rejected"""
        result = render(":::sound[door]\n:::")
        assert result.errors == ["sound can only be used as a leaf directive"]


class TestBgm:
    """Test background music"""

    def test_play(self):
        """Tracks loop by default"""
        result = render("::bgm[theme]{fade=1000}")
        assert element(result, "bgm").props == {"id": "theme", "loop": True, "fade": 1000}

    def test_no_loop(self):
        """loop=false plays the track once"""
        result = render("::bgm[theme]{loop=false}")
        assert element(result, "bgm").props["loop"] is False

    def test_stop(self):
        """stop needs no track"""
        result = render("::bgm{stop fade=500}")
        assert element(result, "bgm").props == {"stop": True, "fade": 500}

    def test_requires_track(self):
        """Playing without a track is reported"""
        result = render("::bgm{volume=0.5}")
        assert result.errors == ["bgm directive requires id or src"]


class TestVolume:
    """Test global volume levels"""

    def test_levels(self):
        """Both levels are clamped into range"""
        result = render("::volume{bgm=0.4 sfx=2}")
        assert element(result, "volume").props == {"bgm": 0.4, "sfx": 1}

    def test_empty(self):
        """A volume directive setting nothing is dropped silently"""
        result = render("::volume")
        assert result.errors == []
        assert result.root.find_all("volume") == []


class TestPreload:
    """Test asset preloading"""

    def test_audio(self):
        """The label is the asset id"""
        result = render('::preloadAudio[theme]{src="audio/theme.mp3"}')
        assert element(result, "preloadAudio").props == {"id": "theme", "src": "audio/theme.mp3"}

    def test_image_id_attribute(self):
        """An id attribute works in place of the label"""
        result = render('::preloadImage{id="map" src="img/map.png"}')
        assert element(result, "preloadImage").props == {"id": "map", "src": "img/map.png"}

    def test_requires_src(self):
        """Both an id and a source are needed"""
        result = render("::preloadImage[map]")
        assert result.errors == ["preloadImage directive requires an id/label and src"]
        assert result.root.find_all("preloadImage") == []
