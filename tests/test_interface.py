import json

import pytest

from shspy.interface import build_parser, load_config, merge_config, print_config_summary


def parse(*argv):
    return build_parser().parse_args(list(argv))


def test_parser_defaults():
    args = parse("ar7.xyz")
    assert args.input_file == "ar7.xyz"
    assert args.config_file == "./config.json"
    assert args.calculator is None
    assert args.delta_r is None
    assert not args.directions_only
    assert args.log_level == "INFO"


def test_parser_rejects_unknown_calculator():
    with pytest.raises(SystemExit):
        parse("ar7.xyz", "--calculator", "orca")


def test_merge_config_precedence():
    config = {
        "shs_settings": {"delta_r": 0.02, "sphere_radius": 0.1, "max_es": 5, "output_dir": "json_out"},
        "calculator": {"type": "lj", "theory": "mp2/cc-pvdz"},
    }
    args = parse("ar7.xyz", "--delta_r", "0.03", "--n_workers", "4")
    merged = merge_config(args, config)

    settings = merged["_shs"]["settings"]
    assert settings["delta_r"] == 0.03
    assert settings["sphere_radius"] == 0.1
    assert settings["max_es"] == 5
    assert settings["n_workers"] == 4
    assert settings["conv_iter_limit"] == 10
    assert merged["_shs"]["output_dir"] == "json_out"
    assert merged["_calculator"]["type"] == "lj"
    assert merged["_calculator"]["theory"] == "mp2/cc-pvdz"


def test_merge_config_cli_overrides_output_dir_and_calculator():
    config = {"shs_settings": {"output_dir": "json_out"}, "calculator": {"type": "lj"}}
    args = parse("ar7.xyz", "--output_dir", "cli_out", "--calculator", "gaussian", "--directions_only")
    merged = merge_config(args, config)
    assert merged["_shs"]["output_dir"] == "cli_out"
    assert merged["_shs"]["directions_only"]
    assert merged["_calculator"]["type"] == "gaussian"


def test_merge_config_rejects_unknown_calculator_in_json():
    with pytest.raises(SystemExit):
        merge_config(parse("ar7.xyz"), {"calculator": {"type": "orca"}})


def test_load_config(tmp_path, monkeypatch):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"shs_settings": {"delta_r": 0.02}}))
    assert load_config(str(path)) == {"shs_settings": {"delta_r": 0.02}}

    with pytest.raises(SystemExit):
        load_config(str(tmp_path / "missing.json"))

    path.write_text("{not json")
    with pytest.raises(SystemExit):
        load_config(str(path))

    monkeypatch.chdir(tmp_path)
    assert load_config("./config.json") == {}


def test_print_config_summary(capsys):
    merged = merge_config(parse("ar7.xyz", "--calculator", "lj"), {})
    print_config_summary(merged)
    out = capsys.readouterr().out
    assert "Calculator      : lj" in out
    assert "unlimited" in out


def test_merge_config_resolves_directions_file(tmp_path):
    merged = merge_config(parse("ar7.xyz"), {"shs_settings": {"directions_file": "saved/mins_on_sphere"}})
    assert merged["_shs"]["settings"]["directions_file"].endswith("saved/mins_on_sphere")

    args = parse("ar7.xyz", "--directions_file", str(tmp_path / "mins_on_sphere"))
    merged = merge_config(args, {"shs_settings": {"directions_file": "saved/mins_on_sphere"}})
    assert merged["_shs"]["settings"]["directions_file"] == str(tmp_path / "mins_on_sphere")

    assert merge_config(parse("ar7.xyz"), {})["_shs"]["settings"]["directions_file"] is None
