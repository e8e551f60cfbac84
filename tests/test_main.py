from sleept import main


def test_channels_from_env(monkeypatch):
    monkeypatch.setenv("SLEEPT_CHANNELS", " foo, #bar ,,")
    assert main._channels_from_env() == ["foo", "#bar"]


def test_channels_from_env_unset(monkeypatch):
    monkeypatch.delenv("SLEEPT_CHANNELS", raising=False)
    assert main._channels_from_env() == []
