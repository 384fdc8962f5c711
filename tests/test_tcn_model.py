"""Tests for the TCN model and its on-disk store."""

import numpy as np
import pytest

torch = pytest.importorskip("torch")

from tradeflow.app.ml.store import ModelStore, sanitize_symbol  # noqa: E402
from tradeflow.app.ml.tcn import TcnModel, TcnNet, windows_to_tensors  # noqa: E402
from tradeflow.app.ml.tcn_config import TcnConfig, TrainingConfig  # noqa: E402
from tradeflow.core.model_port import ModelPort, ModelRepository  # noqa: E402
from tradeflow.core.models import FeatureWindow  # noqa: E402

WINDOW = 6
FEATURES = 4

SMALL_TCN = TcnConfig(filters_per_layer=(4, 4), kernel_size=3, dropout_rate=0.0, dense_units=4)
FAST_TRAINING = TrainingConfig(epochs=2, batch_size=4, validation_split=0.25, shuffle=False)


def make_windows(count: int, rows: int = WINDOW, cols: int = FEATURES) -> list[FeatureWindow]:
    rng = np.random.default_rng(11)
    return [
        FeatureWindow(
            window=rng.normal(size=(rows, cols)),
            label=i % 2,
            last_close=100.0,
            next_close=101.0 if i % 2 else 99.0,
            bars=(),
        )
        for i in range(count)
    ]


def make_model(seed: int = 1) -> TcnModel:
    return TcnModel(WINDOW, FEATURES, config=SMALL_TCN, training=FAST_TRAINING, seed=seed)


class TestTcnNet:
    """Tests for the network."""

    def test_output_is_probability_per_sample(self):
        net = TcnNet(FEATURES, SMALL_TCN)
        out = net(torch.randn(3, WINDOW, FEATURES))

        assert out.shape == (3,)
        assert torch.all((out >= 0) & (out <= 1))

    def test_config_requires_blocks(self):
        with pytest.raises(ValueError):
            TcnConfig(filters_per_layer=())


class TestWindowsToTensors:
    """Tests for tensor conversion."""

    def test_shapes(self):
        xs, ys = windows_to_tensors(make_windows(5))

        assert xs.shape == (5, WINDOW, FEATURES)
        assert xs.dtype == torch.float32
        assert ys.tolist() == [0.0, 1.0, 0.0, 1.0, 0.0]

    def test_empty(self):
        with pytest.raises(ValueError):
            windows_to_tensors([])


class TestTcnModel:
    """Tests for TcnModel as a ModelPort."""

    def test_satisfies_protocol(self):
        assert isinstance(make_model(), ModelPort)

    def test_train_returns_sample_count(self):
        model = make_model()

        assert model.train(make_windows(12)) == 12
        assert model.train([]) == 0

    def test_predict_probability(self):
        model = make_model()
        model.train(make_windows(8))

        probability = model.predict(make_windows(1)[0])

        assert 0.0 <= probability <= 1.0

    def test_predict_is_repeatable(self):
        model = make_model()
        window = make_windows(1)[0]

        assert model.predict(window) == model.predict(window)

    def test_seed_leaves_global_rng_untouched(self):
        torch.manual_seed(123)
        state = torch.get_rng_state()

        make_model(seed=1)

        assert torch.equal(torch.get_rng_state(), state)

    def test_same_seed_same_weights(self):
        first = make_model(seed=5).net.state_dict()
        second = make_model(seed=5).net.state_dict()

        for key, value in first.items():
            assert torch.equal(value, second[key])

    def test_shape_mismatch_rejected(self):
        model = make_model()

        with pytest.raises(ValueError):
            model.predict(make_windows(1, rows=WINDOW + 1)[0])
        with pytest.raises(ValueError):
            model.train(make_windows(3, cols=FEATURES + 1))


class TestModelStore:
    """Tests for ModelStore persistence."""

    def test_satisfies_protocol(self, tmp_path):
        assert isinstance(ModelStore(tmp_path), ModelRepository)

    def test_sanitize_symbol(self):
        assert sanitize_symbol("BTC-USDT") == "BTC-USDT"
        assert sanitize_symbol("../BTC/USDT") == "___BTC_USDT"

    def test_load_missing(self, tmp_path):
        assert ModelStore(tmp_path).load("BTC-USDT") is None

    def test_round_trip(self, tmp_path):
        store = ModelStore(tmp_path, tcn_config=SMALL_TCN, training_config=FAST_TRAINING)
        model = store.create(WINDOW, FEATURES)
        model.train(make_windows(8))
        window = make_windows(1)[0]

        store.save("BTC-USDT", model)
        loaded = store.load("BTC-USDT")

        assert store.exists("BTC-USDT")
        assert (tmp_path / "BTC-USDT" / "model.pt").is_file()
        assert loaded.shape_of() == (WINDOW, FEATURES)
        assert loaded.config == SMALL_TCN
        assert loaded.predict(window) == pytest.approx(model.predict(window))

    def test_loaded_model_keeps_stored_architecture(self, tmp_path):
        ModelStore(tmp_path, tcn_config=SMALL_TCN).save(
            "ETH-USDT", TcnModel(WINDOW, FEATURES, config=SMALL_TCN)
        )

        loaded = ModelStore(tmp_path).load("ETH-USDT")

        assert loaded.config.filters_per_layer == (4, 4)
