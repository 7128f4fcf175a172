import pytest
import yaml

from ibfe.cli.run_ibfe import TEMPLATE_CONFIG, main
from ibfe.core.config import (
    IBFEMethodConfig,
    IBFESimulationConfig,
    InterpSpec,
    JumpConditionsForm,
    SpreadSpec,
)
from ibfe.core.exceptions import ConfigurationError
from ibfe.elements import QuadratureType
from ibfe.transfer import KernelFunction


class TestInteractionSpecs:
    def test_defaults(self):
        spec = InterpSpec()
        assert spec.kernel_fcn == KernelFunction.IB_4
        assert spec.quad_type == QuadratureType.GAUSS
        assert spec.use_consistent_mass_matrix

    def test_coercion_from_names(self):
        spec = SpreadSpec(kernel_fcn="BSPLINE_3", quad_type="QGRID", quad_order=2)
        assert spec.kernel_fcn == KernelFunction.BSPLINE_3
        assert spec.quad_type == QuadratureType.GRID

    @pytest.mark.parametrize(
        "kwargs",
        [{"kernel_fcn": "GAUSSIAN"}, {"quad_type": "QSIMPSON"}, {"quad_order": 0}, {"point_density": 0.0}],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ConfigurationError):
            SpreadSpec(**kwargs)

    def test_dict_round_trip(self):
        spec = InterpSpec(kernel_fcn="IB_3", use_adaptive_quadrature=False, use_consistent_mass_matrix=False)
        assert InterpSpec.from_dict(spec.to_dict()) == spec

    def test_unknown_keys(self):
        with pytest.raises(ConfigurationError):
            SpreadSpec.from_dict({"kernel": "IB_4"})


class TestMethodConfig:
    def test_defaults_are_valid(self):
        config = IBFEMethodConfig()
        assert config.jump_form == JumpConditionsForm.WEAK
        assert not config.use_jump_conditions

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"spatial_dim": 1},
            {"use_jump_conditions": True},
            {"split_normal_force": True},
            {"use_jump_conditions": True, "split_tangential_force": True, "mu": 0.0},
            {"use_jump_conditions": True, "split_normal_force": True, "use_higher_order_jump": True},
            {"modify_vel_interp_jumps": True},
            {"jump_conditions_form": "strong"},
            {"mu": -1.0},
            {"vel_interp_width": 0.0},
        ],
    )
    def test_invalid_combinations(self, kwargs):
        with pytest.raises(ConfigurationError):
            IBFEMethodConfig(**kwargs)

    def test_round_trip_through_dict(self):
        config = IBFEMethodConfig(
            use_jump_conditions=True,
            split_normal_force=True,
            split_tangential_force=True,
            jump_conditions_form="pointwise",
            mu=0.05,
            default_interp_spec=InterpSpec(kernel_fcn="BSPLINE_4"),
        )
        restored = IBFEMethodConfig.from_dict(config.to_dict())
        assert restored == config
        assert restored.jump_form == JumpConditionsForm.POINTWISE

    def test_unknown_keys(self):
        with pytest.raises(ConfigurationError):
            IBFEMethodConfig.from_dict({"use_jumps": True})

    def test_copy_revalidates(self):
        config = IBFEMethodConfig()
        with pytest.raises(ConfigurationError):
            config.copy(use_jump_conditions=True)


class TestSimulationConfig:
    def test_template_loads(self, tmp_path):
        path = tmp_path / "case.yaml"
        path.write_text(TEMPLATE_CONFIG)
        config = IBFESimulationConfig.from_yaml(path)
        assert len(config.parts) == 1
        assert config.parts[0].material.params["stiffness"] == 1.0
        assert config.time.total_steps == 100
        assert config.method.use_jump_conditions
        assert config.output.folder == str(tmp_path / "results")

    def test_yaml_round_trip(self, tmp_path):
        data = yaml.safe_load(TEMPLATE_CONFIG)
        config = IBFESimulationConfig.from_dict(data)
        path = tmp_path / "saved.yaml"
        config.save_yaml(path)
        restored = IBFESimulationConfig.from_yaml(path)
        assert restored.method == config.method
        assert restored.parts[0].mesh.params == config.parts[0].mesh.params

    def test_dimension_mismatch(self):
        data = yaml.safe_load(TEMPLATE_CONFIG)
        data["grid"]["n_cells"] = [16, 16, 16]
        data["grid"]["x_lower"] = [0.0, 0.0, 0.0]
        data["grid"]["x_upper"] = [1.0, 1.0, 1.0]
        with pytest.raises(ConfigurationError):
            IBFESimulationConfig.from_dict(data)

    def test_missing_sections(self):
        with pytest.raises(KeyError):
            IBFESimulationConfig.from_dict({"grid": {}})

    def test_unknown_material(self):
        data = yaml.safe_load(TEMPLATE_CONFIG)
        data["parts"][0]["material"]["type"] = "rubber"
        with pytest.raises(ConfigurationError):
            IBFESimulationConfig.from_dict(data)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            IBFESimulationConfig.from_yaml(tmp_path / "missing.yaml")


class TestCommandLine:
    def test_template(self, monkeypatch, capsys):
        monkeypatch.setattr("sys.argv", ["ibfe-run", "--template"])
        assert main() == 0
        assert "parts:" in capsys.readouterr().out

    def test_validate(self, monkeypatch, tmp_path):
        path = tmp_path / "case.yaml"
        path.write_text(TEMPLATE_CONFIG)
        monkeypatch.setattr("sys.argv", ["ibfe-run", str(path), "--validate"])
        assert main() == 0

    def test_missing_config(self, monkeypatch, tmp_path):
        monkeypatch.setattr("sys.argv", ["ibfe-run", str(tmp_path / "none.yaml")])
        assert main() == 1
