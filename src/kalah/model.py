"""
Q-value approximator for Kalah.

Architecture (default, 6 pits per player):
- Input: 15 player-relative features
- Dense 128 -> 128 -> 64 with ReLU (He init)
- Linear head: one Q-value per own pit (Xavier init)

`MLPApproximator` wraps the network with the operations the agent relies on
(predict, fit on a batch, weight copy, serialization). The agent only talks
to it through the `FunctionApproximator` protocol.
"""

import copy
from typing import Any, Dict, Optional, Protocol, Sequence

import numpy as np
import torch
import torch.nn as nn
import torch.nn.functional as F

from .errors import MalformedModelError

TOPOLOGY_KIND = "mlp"
DEFAULT_HIDDEN_SIZES = (128, 128, 64)


class FunctionApproximator(Protocol):
    """Trainable mapping from feature vectors to per-action values."""

    def predict(self, features: np.ndarray) -> np.ndarray: ...

    def predict_batch(self, features: np.ndarray) -> np.ndarray: ...

    def fit_batch(self, features: np.ndarray, targets: np.ndarray,
                  learning_rate: float, clip: float) -> float: ...

    def get_weights(self) -> Dict[str, torch.Tensor]: ...

    def set_weights(self, weights: Dict[str, torch.Tensor]) -> None: ...

    def to_serializable(self) -> Dict[str, Any]: ...


class QNetwork(nn.Module):
    """Fully connected Q-network."""

    def __init__(
        self,
        input_size: int = 15,
        output_size: int = 6,
        hidden_sizes: Sequence[int] = DEFAULT_HIDDEN_SIZES,
    ):
        super().__init__()

        self.input_size = input_size
        self.output_size = output_size
        self.hidden_sizes = tuple(hidden_sizes)

        layers = []
        prev = input_size
        for h in self.hidden_sizes:
            layers.append(nn.Linear(prev, h))
            layers.append(nn.ReLU())
            prev = h
        self.body = nn.Sequential(*layers)
        self.head = nn.Linear(prev, output_size)

        self._init_weights()

    def _init_weights(self):
        """Initialize weights."""
        for module in self.body.modules():
            if isinstance(module, nn.Linear):
                nn.init.kaiming_normal_(module.weight, nonlinearity="relu")
                nn.init.zeros_(module.bias)
        nn.init.xavier_uniform_(self.head.weight)
        nn.init.zeros_(self.head.bias)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """
        Forward pass.

        Args:
            x: [B, input_size] float tensor

        Returns:
            [B, output_size] Q-values
        """
        return self.head(self.body(x))

    def topology(self) -> Dict[str, Any]:
        return {
            "kind": TOPOLOGY_KIND,
            "input_size": self.input_size,
            "hidden_sizes": list(self.hidden_sizes),
            "output_size": self.output_size,
        }

    def count_parameters(self) -> int:
        """Return total number of trainable parameters."""
        return sum(p.numel() for p in self.parameters() if p.requires_grad)


class MLPApproximator:
    """QNetwork + Adam optimizer behind the FunctionApproximator interface."""

    def __init__(
        self,
        input_size: int = 15,
        output_size: int = 6,
        hidden_sizes: Sequence[int] = DEFAULT_HIDDEN_SIZES,
        learning_rate: float = 1e-3,
        device: Optional[torch.device] = None,
    ):
        self.device = device or torch.device("cpu")
        self.net = QNetwork(input_size, output_size, hidden_sizes).to(self.device)
        self.optimizer = torch.optim.Adam(self.net.parameters(), lr=learning_rate)

    @property
    def input_size(self) -> int:
        return self.net.input_size

    @property
    def output_size(self) -> int:
        return self.net.output_size

    @torch.inference_mode()
    def predict(self, features: np.ndarray) -> np.ndarray:
        """[F] features -> [N] Q-values."""
        return self.predict_batch(np.asarray(features)[None, :])[0]

    @torch.inference_mode()
    def predict_batch(self, features: np.ndarray) -> np.ndarray:
        """[B, F] features -> [B, N] Q-values."""
        self.net.eval()
        x = torch.as_tensor(np.asarray(features, dtype=np.float32), device=self.device)
        return self.net(x).cpu().numpy()

    def fit_batch(self, features: np.ndarray, targets: np.ndarray,
                  learning_rate: float, clip: float) -> float:
        """
        One epoch (a single gradient step) of MSE regression on the batch.

        Returns:
            batch loss before the update
        """
        set_lr(self.optimizer, learning_rate)
        self.net.train()

        x = torch.as_tensor(np.asarray(features, dtype=np.float32), device=self.device)
        y = torch.as_tensor(np.asarray(targets, dtype=np.float32), device=self.device)

        loss = F.mse_loss(self.net(x), y)
        self.optimizer.zero_grad(set_to_none=True)
        loss.backward()
        if clip and clip > 0:
            torch.nn.utils.clip_grad_norm_(self.net.parameters(), clip)
        self.optimizer.step()

        return float(loss.item())

    def get_weights(self) -> Dict[str, torch.Tensor]:
        return {k: v.detach().clone() for k, v in self.net.state_dict().items()}

    def set_weights(self, weights: Dict[str, torch.Tensor]) -> None:
        self.net.load_state_dict({k: v.clone() for k, v in weights.items()})

    def to_serializable(self) -> Dict[str, Any]:
        return {
            "topology": self.net.topology(),
            "weights": {k: v.cpu() for k, v in self.get_weights().items()},
            "optimizer": copy.deepcopy(self.optimizer.state_dict()),
        }

    @classmethod
    def from_serializable(
        cls,
        blob: Dict[str, Any],
        learning_rate: float = 1e-3,
        device: Optional[torch.device] = None,
    ) -> "MLPApproximator":
        """Rebuild from `to_serializable()` output; rejects unknown topologies."""
        try:
            topo = blob["topology"]
            weights = blob["weights"]
        except (KeyError, TypeError) as e:
            raise MalformedModelError(f"missing model field: {e}") from e

        if not isinstance(topo, dict) or topo.get("kind") != TOPOLOGY_KIND:
            raise MalformedModelError(f"unrecognized topology: {topo!r}")
        if not isinstance(weights, dict):
            raise MalformedModelError(f"weights must be a state dict, got {type(weights).__name__}")
        try:
            approx = cls(
                input_size=int(topo["input_size"]),
                output_size=int(topo["output_size"]),
                hidden_sizes=[int(h) for h in topo["hidden_sizes"]],
                learning_rate=learning_rate,
                device=device,
            )
            approx.set_weights(weights)
        except (KeyError, TypeError, ValueError, AttributeError, RuntimeError) as e:
            raise MalformedModelError(f"weights do not match topology: {e}") from e

        if blob.get("optimizer"):
            try:
                approx.optimizer.load_state_dict(blob["optimizer"])
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                raise MalformedModelError(f"bad optimizer state: {e}") from e
        return approx


def set_lr(optimizer: torch.optim.Optimizer, lr: float) -> None:
    for g in optimizer.param_groups:
        g["lr"] = lr


def get_lr(optimizer: torch.optim.Optimizer) -> float:
    """Get current learning rate."""
    for g in optimizer.param_groups:
        return float(g.get("lr", 0.0))
    return 0.0


def param_norm(model: nn.Module) -> float:
    """Compute L2 norm of all parameters."""
    total = 0.0
    with torch.no_grad():
        for p in model.parameters():
            total += float((p.detach() ** 2).sum().item())
    return total ** 0.5
