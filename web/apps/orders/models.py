import uuid
from django.db import models, transaction


class BasketModel(models.Model):
    # UUID PK exposed in the API
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class Status(models.TextChoices):
        OPEN = "OPEN"
        CONVERTED = "CONVERTED"
        ABANDONED = "ABANDONED"

    # Null for guest baskets
    user_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.OPEN)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "baskets"


class OrderLineModel(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Internal incremental counter, keeps lines in creation order
    internal_id = models.BigIntegerField(unique=True, editable=False, null=True)

    basket = models.ForeignKey(BasketModel, on_delete=models.CASCADE, related_name="lines")
    product_id = models.CharField(max_length=64, db_index=True)
    product_variant_id = models.CharField(max_length=64, null=True, blank=True)
    quantity = models.PositiveIntegerField()
    # Snapshot of the catalog price when the line was created
    product_price = models.DecimalField(max_digits=12, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "order_lines"
        ordering = ["internal_id"]
        constraints = [
            models.UniqueConstraint(fields=["basket", "product_id"], name="uniq_order_line_product_per_basket"),
        ]

    def save(self, *args, **kwargs):
        # Assign incremental `internal_id` only on creation
        if self.internal_id is None:
            with transaction.atomic():
                last = (
                    OrderLineModel.objects.select_for_update()
                    .exclude(internal_id=None)
                    .order_by("-internal_id")
                    .first()
                )
                self.internal_id = 1 if last is None else last.internal_id + 1
                super().save(*args, **kwargs)
            return
        super().save(*args, **kwargs)


class AddressModel(models.Model):
    # Rows belong to the users' address book; the orders app only reads them
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.CharField(max_length=64, db_index=True)
    country = models.CharField(max_length=64, blank=True, default="")
    city = models.CharField(max_length=128, blank=True, default="")
    street = models.CharField(max_length=256, blank=True, default="")
    zip_code = models.CharField(max_length=16, blank=True, default="")

    class Meta:
        db_table = "addresses"


class CheckoutModel(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class Status(models.TextChoices):
        CREATED = "CREATED"
        PROCESSING = "PROCESSING"
        SHIPPED = "SHIPPED"
        CANCELLED = "CANCELLED"

    user_id = models.CharField(max_length=64, db_index=True)
    basket = models.OneToOneField(BasketModel, on_delete=models.PROTECT, related_name="checkout")
    address = models.ForeignKey(AddressModel, on_delete=models.PROTECT, related_name="checkouts")
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.CREATED)
    comment = models.TextField(blank=True, default="")
    # Copied from the basket at conversion time
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment_id = models.CharField(max_length=128, null=True, blank=True, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "checkouts"
