import json
import unittest

from src.sidecar.config import SidecarConfig
from src.sidecar.errors import ConfigError
from src.sidecar.models import ContainerSpec, EnvVar, ResourceRequirements
from src.sidecar.overrides import (
    OverrideSet,
    apply_override_layers,
    apply_overrides,
    override_layers,
    parse_profiles,
    provider_overrides,
)
from src.sidecar.template import build_default_template


def _container() -> ContainerSpec:
    return ContainerSpec(
        name="datadog-agent",
        image="gcr.io/datadoghq/agent:7",
        env=(EnvVar.literal("A", "1"), EnvVar.literal("B", "2"), EnvVar.literal("C", "3")),
        resources=ResourceRequirements(
            requests={"memory": "256Mi", "cpu": "200m"},
            limits={"memory": "256Mi", "cpu": "200m"},
        ),
    )


class ApplyOverridesTests(unittest.TestCase):
    def test_env_replaced_in_place_and_new_names_appended(self) -> None:
        result = apply_overrides(
            _container(),
            OverrideSet(env=(EnvVar.literal("D", "4"), EnvVar.literal("B", "20"))),
        )
        self.assertEqual([(e.name, e.value) for e in result.env], [("A", "1"), ("B", "20"), ("C", "3"), ("D", "4")])

    def test_env_override_can_switch_source(self) -> None:
        result = apply_overrides(
            _container(),
            OverrideSet(env=(EnvVar.from_secret("A", "my-secret", "a"),)),
        )
        self.assertEqual(result.env[0].to_dict()["valueFrom"], {"secretKeyRef": {"name": "my-secret", "key": "a"}})

    def test_resources_merge_per_key(self) -> None:
        result = apply_overrides(_container(), OverrideSet(limits={"cpu": "500m"}))
        self.assertEqual(result.resources.limits, {"memory": "256Mi", "cpu": "500m"})
        self.assertEqual(result.resources.requests, {"memory": "256Mi", "cpu": "200m"})

    def test_new_resource_added(self) -> None:
        result = apply_overrides(_container(), OverrideSet(requests={"ephemeral-storage": "1Gi"}))
        self.assertEqual(result.resources.requests["ephemeral-storage"], "1Gi")
        self.assertEqual(result.resources.requests["memory"], "256Mi")

    def test_input_container_not_mutated(self) -> None:
        container = _container()
        apply_overrides(container, OverrideSet(env=(EnvVar.literal("A", "x"),), requests={"cpu": "1"}))
        self.assertEqual(container.env[0].value, "1")
        self.assertEqual(container.resources.requests["cpu"], "200m")

    def test_empty_override_is_noop(self) -> None:
        container = _container()
        self.assertEqual(apply_overrides(container, OverrideSet()), container)

    def test_unparsable_quantity_raises(self) -> None:
        with self.assertRaises(ConfigError):
            apply_overrides(_container(), OverrideSet(requests={"cpu": "lots"}))
        with self.assertRaises(ConfigError):
            apply_overrides(_container(), OverrideSet(limits={"memory": "12Q"}))

    def test_non_finite_and_malformed_quantities_raise(self) -> None:
        for quantity in ("Infinity", "-Infinity", "NaN", "sNaN", "1_000m", " 500m", True, float("inf")):
            with self.subTest(quantity=quantity):
                with self.assertRaises(ConfigError):
                    apply_overrides(_container(), OverrideSet(limits={"cpu": quantity}))

    def test_numeric_quantities_accepted(self) -> None:
        result = apply_overrides(_container(), OverrideSet(limits={"cpu": 2, "memory": "1.5Gi"}))
        self.assertEqual(result.resources.limits, {"cpu": "2", "memory": "1.5Gi"})

    def test_empty_env_name_raises(self) -> None:
        with self.assertRaises(ConfigError):
            apply_overrides(_container(), OverrideSet(env=(EnvVar.literal("", "x"),)))

    def test_duplicate_env_name_in_one_set_raises(self) -> None:
        with self.assertRaises(ConfigError):
            apply_overrides(
                _container(),
                OverrideSet(env=(EnvVar.literal("X", "1"), EnvVar.literal("X", "2"))),
            )


class OverrideLayerTests(unittest.TestCase):
    def test_later_layer_wins(self) -> None:
        provider = OverrideSet(env=(EnvVar.literal("DD_LOG_LEVEL", "info"),))
        profile = OverrideSet(env=(EnvVar.literal("DD_LOG_LEVEL", "debug"),))
        result = apply_override_layers(_container(), [provider, profile])
        self.assertEqual(result.get_env("DD_LOG_LEVEL").value, "debug")
        self.assertEqual([e.name for e in result.env].count("DD_LOG_LEVEL"), 1)

    def test_profile_beats_provider_and_template(self) -> None:
        template = build_default_template(SidecarConfig(), environ={})
        provider = OverrideSet(env=(EnvVar.literal("DD_SITE", "datadoghq.eu"),))
        profile = OverrideSet(env=(EnvVar.literal("DD_SITE", "us3.datadoghq.com"),))
        result = apply_override_layers(template, [provider, profile])
        self.assertEqual(result.get_env("DD_SITE").value, "us3.datadoghq.com")
        self.assertEqual([e.name for e in result.env].index("DD_SITE"), 1)

    def test_provider_cpu_limit_and_profile_memory_request(self) -> None:
        template = build_default_template(SidecarConfig(), environ={})
        result = apply_override_layers(
            template,
            [OverrideSet(limits={"cpu": "500m"}), OverrideSet(requests={"memory": "512Mi"})],
        )
        self.assertEqual(result.resources.limits, {"memory": "256Mi", "cpu": "500m"})
        self.assertEqual(result.resources.requests, {"memory": "512Mi", "cpu": "200m"})
        self.assertEqual(result.env, template.env)
        self.assertEqual(result.image, template.image)

    def test_failing_layer_aborts_fold(self) -> None:
        with self.assertRaises(ConfigError):
            apply_override_layers(
                _container(),
                [OverrideSet(limits={"cpu": "500m"}), OverrideSet(requests={"memory": "???"})],
            )

    def test_override_layers_order(self) -> None:
        config = SidecarConfig(
            provider="fargate",
            profiles=json.dumps([{"env": [{"name": "DD_EKS_FARGATE", "value": "false"}]}]),
        )
        layers = override_layers(config)
        self.assertEqual(len(layers), 2)
        self.assertEqual(layers[0].env[0].value, "true")
        result = apply_override_layers(_container(), layers)
        self.assertEqual(result.get_env("DD_EKS_FARGATE").value, "false")


class ProviderOverridesTests(unittest.TestCase):
    def test_no_provider(self) -> None:
        self.assertTrue(provider_overrides("").is_empty())
        self.assertTrue(provider_overrides(None).is_empty())

    def test_fargate(self) -> None:
        overrides = provider_overrides("fargate")
        self.assertEqual([e.to_dict() for e in overrides.env], [{"name": "DD_EKS_FARGATE", "value": "true"}])

    def test_unknown_provider(self) -> None:
        with self.assertRaises(ConfigError):
            provider_overrides("gke-autopilot")


class ParseProfilesTests(unittest.TestCase):
    def test_empty_sources(self) -> None:
        self.assertTrue(parse_profiles(None).is_empty())
        self.assertTrue(parse_profiles("").is_empty())
        self.assertTrue(parse_profiles("[]").is_empty())
        self.assertTrue(parse_profiles(()).is_empty())

    def test_json_profile(self) -> None:
        source = json.dumps(
            [
                {
                    "env": [
                        {"name": "DD_LOG_LEVEL", "value": "debug"},
                        {"name": "DD_HOSTNAME", "valueFrom": {"fieldRef": {"fieldPath": "spec.nodeName"}}},
                        {"name": "DD_APP_KEY", "valueFrom": {"secretKeyRef": {"name": "dd", "key": "app-key"}}},
                    ],
                    "resources": {"requests": {"cpu": "1"}, "limits": {"memory": "1Gi", "cpu": 2}},
                }
            ]
        )
        overrides = parse_profiles(source)
        self.assertEqual([e.name for e in overrides.env], ["DD_LOG_LEVEL", "DD_HOSTNAME", "DD_APP_KEY"])
        self.assertEqual(overrides.env[1].field_path, "spec.nodeName")
        self.assertEqual(overrides.env[2].secret_key, "app-key")
        self.assertEqual(overrides.requests, {"cpu": "1"})
        self.assertEqual(overrides.limits, {"memory": "1Gi", "cpu": "2"})

    def test_list_profile(self) -> None:
        overrides = parse_profiles([{"resources": {"requests": {"memory": "512Mi"}}}])
        self.assertEqual(overrides.requests, {"memory": "512Mi"})
        self.assertEqual(overrides.env, ())

    def test_boolean_quantity_rejected(self) -> None:
        with self.assertRaises(ConfigError):
            parse_profiles([{"resources": {"limits": {"cpu": True}}}])

    def test_more_than_one_profile(self) -> None:
        with self.assertRaises(ConfigError):
            parse_profiles([{"env": []}, {"env": []}])

    def test_invalid_json(self) -> None:
        with self.assertRaises(ConfigError):
            parse_profiles("[{not json")

    def test_not_a_list(self) -> None:
        with self.assertRaises(ConfigError):
            parse_profiles('{"env": []}')

    def test_unknown_field(self) -> None:
        with self.assertRaises(ConfigError):
            parse_profiles([{"envs": []}])

    def test_value_and_value_from(self) -> None:
        with self.assertRaises(ConfigError):
            parse_profiles(
                [{"env": [{"name": "X", "value": "1", "valueFrom": {"fieldRef": {"fieldPath": "spec.nodeName"}}}]}]
            )

    def test_empty_value_from(self) -> None:
        with self.assertRaises(ConfigError):
            parse_profiles([{"env": [{"name": "X", "valueFrom": {}}]}])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
