import numpy as np

import chatbot
from bionet import BioEngine, EngineConfig, HttpTextGenerator, config_for_scale


def make_shell(config, frames=3):
    return chatbot.Shell(BioEngine(config), frames_per_step=frames)


def test_make_bar_clamps():
    assert chatbot.make_bar(0.5, width=10) == "█" * 5 + "░" * 5
    assert chatbot.make_bar(2.0, width=4) == "████"
    assert chatbot.make_bar(-1.0, width=4) == "░░░░"


def test_advance_moves_simulated_clock(config):
    shell = make_shell(config, frames=30)
    start = shell.clock
    shell.advance()
    assert shell.engine.tick_count == 30
    assert abs(shell.clock - start - 1.0) < 1e-6


def test_quit_ends_loop(config, capsys):
    shell = make_shell(config)
    assert chatbot.handle_command(shell, "/quit") is False
    assert "Shutting down" in capsys.readouterr().out


def test_toggles(config):
    shell = make_shell(config)
    chatbot.handle_command(shell, "/learn")
    assert shell.engine.learning_mode
    chatbot.handle_command(shell, "/think")
    assert shell.engine.thinking
    chatbot.handle_command(shell, "/freeze")
    assert shell.engine.frozen


def test_teach_needs_topic(config, capsys):
    shell = make_shell(config)
    assert chatbot.handle_command(shell, "/teach") is True
    assert "Usage" in capsys.readouterr().out
    assert not shell.engine.teacher.active


def test_unknown_command(config, capsys):
    shell = make_shell(config)
    assert chatbot.handle_command(shell, "/dance") is True
    assert "Unknown command" in capsys.readouterr().out


def test_image_command_lights_retina(config, tmp_path, capsys):
    path = tmp_path / "frame.npy"
    np.save(path, np.full((10, 10), 255.0))
    shell = make_shell(config)
    chatbot.handle_command(shell, f"/image {path}")
    assert "100 retina cells lit" in capsys.readouterr().out


def test_save_then_load_swaps_engine(config, tmp_path):
    shell = make_shell(config)
    shell.engine.process_text("Hund", shell.clock)
    path = tmp_path / "net.bionet"
    chatbot.handle_command(shell, f"/save {path}")
    assert path.exists()

    old = shell.engine
    chatbot.handle_command(shell, f"/load {path}")
    assert shell.engine is not old
    assert shell.engine.store.find_by_label("Hund") is not None


def test_load_missing_file_keeps_engine(config, tmp_path, capsys):
    shell = make_shell(config)
    old = shell.engine
    chatbot.handle_command(shell, f"/load {tmp_path / 'missing.bionet'}")
    assert shell.engine is old
    assert "Load failed" in capsys.readouterr().out


def test_load_flag_keeps_generator_and_scale(tmp_path, monkeypatch):
    path = tmp_path / "net.bionet"
    BioEngine(EngineConfig(seed=2, initial_core_neurons=0)).save(str(path))

    shells = []

    class RecordingShell(chatbot.Shell):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            shells.append(self)

    def end_of_input(prompt=""):
        raise EOFError

    monkeypatch.setattr(chatbot, "Shell", RecordingShell)
    monkeypatch.setattr("builtins.input", end_of_input)

    chatbot.main([
        "--load", str(path), "--api-url", "http://localhost:1/v1/chat/completions",
        "--scale", "micro", "--seed", "5",
    ])

    engine = shells[0].engine
    assert isinstance(engine.generator, HttpTextGenerator)
    assert engine.generator.url == "http://localhost:1/v1/chat/completions"
    assert engine.teacher.dispatcher is engine.dispatcher
    assert engine.config.seed == 5
    assert engine.config.max_neurons == config_for_scale("micro").max_neurons
