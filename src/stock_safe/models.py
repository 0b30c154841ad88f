from django.db import models


class Stock(models.Model):
    """
    Stored resource guarded by the decrement strategies.

    `version` is bumped by every write made through `DjangoResourceStore` and
    backs the optimistic compare-and-swap.
    """

    sku = models.CharField(max_length=64, unique=True)
    quantity = models.PositiveIntegerField(default=0)
    version = models.PositiveIntegerField(default=0)

    def __str__(self) -> str:
        return f"{self.sku} ({self.quantity}, v{self.version})"
