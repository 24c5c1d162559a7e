"""Two-tier image reconciliation.

The location tier matches this cloud's image locations against the remote
image service. Remote images without a location fall through to the image
tier, which looks for a canonical image that another cloud may already have
imported. Images left without any location afterwards are purged.
"""

import logging
from collections import Counter
from typing import Iterable, List

from prismsync.models.records import VirtualImage, VirtualImageLocation
from prismsync.models.remote import RemoteImage
from prismsync.sync.base import REF_TYPE, BaseSync
from prismsync.sync.engine import UpdateItem


logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = ["qcow2", "disk", "raw", "iso"]


def image_matches(local, item: RemoteImage) -> bool:
    # Images still uploading have no disk id; unset values never match
    return (
        (item.uuid is not None and item.uuid == local.external_id)
        or (item.name is not None and item.name == local.name)
        or (item.vm_disk_id is not None and item.vm_disk_id == local.external_id)
    )


class ImageSync(BaseSync):
    """Keeps virtual images and their per-cloud locations in step with the image service."""

    name = "image"

    @property
    def category(self) -> str:
        return f"prism.image.{self.cloud.id}"

    async def execute(self):
        # ISO images are not imported
        remote = [image for image in self.require(await self.client.list_images()) if image.image_type != "iso"]
        existing = await self.store.locations.list_projections(ref_type=REF_TYPE, ref_id=self.cloud.id)

        await self.reconcile(
            existing,
            remote,
            image_matches,
            loader=self.store.locations.list_by_id,
            on_add=self.add_missing_locations,
            on_update=self.update_locations,
            on_delete=self.remove_locations,
            label=f"{self.label} locations",
        )
        await self.remove_images_without_locations()

    def build_image(self, item: RemoteImage) -> VirtualImage:
        return VirtualImage(
            owner_id=self.cloud.owner_id,
            account_id=self.cloud.effective_account_id,
            category=self.category,
            name=item.name,
            code=f"{self.category}.{item.uuid}",
            status="Active",
            image_type=item.image_type,
            bucket_id=item.storage_container_id,
            unique_id=item.uuid,
            external_id=item.vm_disk_id,
            ref_type=REF_TYPE,
            ref_id=self.cloud.id,
        )

    def build_location(self, item: RemoteImage) -> VirtualImageLocation:
        return VirtualImageLocation(
            owner_id=self.cloud.owner_id,
            code=f"{self.category}.{item.uuid}",
            internal_id=item.uuid,
            external_id=item.vm_disk_id,
            external_disk_id=item.vm_disk_id,
            image_region=self.cloud.region_code,
            ref_type=REF_TYPE,
            ref_id=self.cloud.id,
            image_name=item.name,
        )

    async def add_missing_locations(self, items: List[RemoteImage]):
        """Match location-less remote images against canonical images."""
        ids = {item.uuid for item in items} | {item.vm_disk_id for item in items if item.vm_disk_id}
        names = {item.name for item in items if item.name}
        candidates = await self.store.images.list(
            image_type__in=ALLOWED_IMAGE_TYPES,
            owner_id__in=[None, self.cloud.owner_id],
        )
        existing = [
            image.to_projection()
            for image in candidates
            if image.external_id in ids or image.name in names
        ]

        await self.reconcile(
            existing,
            items,
            image_matches,
            loader=self.store.images.list_by_id,
            on_add=self.add_missing_images,
            on_update=self.add_locations_for_images,
            label=f"{self.label} images",
        )

    async def add_missing_images(self, items: List[RemoteImage]):
        """Neither image nor location exists: create both, image first."""
        pairs = [(self.build_image(item), self.build_location(item)) for item in items]
        result = await self.store.images.bulk_create([image for image, _ in pairs])
        self.check("create images", result)

        created = {id(image) for image in result.succeeded}
        locations = []
        for image, location in pairs:
            if id(image) not in created:
                continue
            location.virtual_image_id = image.id
            locations.append(location)
        if locations:
            self.check("create locations", await self.store.locations.bulk_create(locations))

    async def add_locations_for_images(self, items: List[UpdateItem]):
        """The image was imported through another cloud; add this cloud's location."""
        locations = []
        for item in items:
            location = self.build_location(item.remote)
            location.virtual_image_id = item.existing.id
            locations.append(location)
        self.check("create locations", await self.store.locations.bulk_create(locations))

    async def update_locations(self, items: List[UpdateItem]):
        image_ids = {item.existing.virtual_image_id for item in items if item.existing.virtual_image_id}
        images = {image.id: image for image in await self.store.images.list_by_id(image_ids)}
        location_counts = await self.count_locations(image_ids)

        save_locations = []
        save_images = {}
        for item in items:
            location: VirtualImageLocation = item.existing
            remote: RemoteImage = item.remote
            image = images.get(location.virtual_image_id)
            changed = False

            if location.image_name != remote.name:
                location.image_name = remote.name
                changed = True
                # A name picked for an image shared across clouds is kept
                if image and location_counts[image.id] < 2:
                    image.name = remote.name
                    save_images[image.id] = image
            if location.external_id != remote.vm_disk_id:
                location.external_id = remote.vm_disk_id
                changed = True
            if location.image_region != self.cloud.region_code:
                location.image_region = self.cloud.region_code
                changed = True

            if changed:
                save_locations.append(location)

        if save_locations:
            self.check("save locations", await self.store.locations.bulk_save(save_locations))
        if save_images:
            self.check("save images", await self.store.images.bulk_save(save_images.values()))

    async def count_locations(self, image_ids: Iterable[int]) -> Counter:
        """Number of locations per image id across all clouds, in one query."""
        ids = list(image_ids)
        if not ids:
            return Counter()
        locations = await self.store.locations.list(virtual_image_id__in=ids)
        return Counter(location.virtual_image_id for location in locations)

    async def remove_locations(self, items):
        self.check("remove locations", await self.store.locations.bulk_remove(items))

    async def remove_images_without_locations(self):
        candidates = await self.store.images.list(
            category=self.category,
            user_uploaded=False,
            system_image__in=[None, False],
            owner_id__in=[None, self.cloud.owner_id],
        )
        location_counts = await self.count_locations(image.id for image in candidates)
        orphans = [image for image in candidates if location_counts[image.id] == 0]
        if orphans:
            logger.debug(f"{self.label}: removing {len(orphans)} images without locations")
            self.check("remove images", await self.store.images.bulk_remove(orphans))
