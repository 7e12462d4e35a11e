"""
Quota-gated room creation.

Every insert runs behind the entitlement check inside the same
transaction. The check locks the user's subscription row and the
usage refresh afterwards bumps its version, so two requests racing
for the last free beds cannot both commit.
"""

from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.config.settings import settings
from app.core.exceptions import EntityAlreadyExistsError, RepositoryError
from app.models.room import Bed, Floor, Room, bed_labels
from app.repositories.room import FloorRepository, RoomRepository
from app.repositories.subscription import UserSubscriptionRepository
from app.schemas.room.room_inventory import (
    BulkRoomRequest,
    BulkRoomResult,
    BulkRowOutcome,
    RoomCreate,
    RoomResponse,
)
from app.schemas.subscription.entitlement import EntitlementDecision, QuotaKind
from app.services.base import BaseService, ServiceResult
from app.services.common import UnitOfWork
from app.services.notification.subscription_notifier import SubscriptionNotifier
from app.services.subscription.entitlement_service import EntitlementService
from app.services.subscription.subscription_lifecycle_service import SubscriptionLifecycleService

FLOOR_NOT_FOUND_MESSAGE = "Floor not found"
ROOM_EXISTS_MESSAGE = "Room already exists in this floor"
SUCCESS_ROOM_CREATED = "Room created successfully"
SUCCESS_BULK_PROCESSED = "Bulk room upload processed"


class RoomService(BaseService[Room, RoomRepository]):
    """
    Room inventory behind the entitlement gate.

    - Single room creation with its generated beds
    - Bulk upload checked once against quota, one savepoint per row
    """

    def __init__(
        self,
        repository: RoomRepository,
        db_session: Session,
        floor_repository: Optional[FloorRepository] = None,
        entitlement: Optional[EntitlementService] = None,
        notifier: Optional[SubscriptionNotifier] = None,
    ):
        super().__init__(repository, db_session)
        self.floors = floor_repository or FloorRepository(db_session)
        self.subscriptions = UserSubscriptionRepository(db_session)
        self.entitlement = entitlement or EntitlementService(
            self.subscriptions,
            db_session,
            room_repository=repository,
        )
        self.notifier = notifier

    @property
    def lifecycle(self) -> SubscriptionLifecycleService:
        return self.entitlement.lifecycle

    # =========================================================================
    # Single room
    # =========================================================================

    def create_room(
        self,
        user_id: str,
        property_id: str,
        payload: RoomCreate,
    ) -> ServiceResult[RoomResponse]:
        """
        Create one room and its beds if the user's plan has room for it.

        Returns a QUOTA_EXCEEDED failure carrying the entitlement figures
        when the plan ceiling would be crossed; nothing is written then.
        """
        try:
            floor = self.floors.find_for_property(payload.floor_id, property_id)
            if floor is None:
                return ServiceResult.not_found("Floor", payload.floor_id)

            decision, provisioned = self.entitlement.decide(
                user_id,
                property_id,
                1,
                payload.number_of_beds,
                check_rooms=True,
                for_update=True,
            )
            if not decision.allowed:
                self._settle(provisioned)
                return ServiceResult.quota_exceeded(decision.message, decision.to_wire())

            if self.repository.find_on_floor(floor.id, payload.room_number) is not None:
                self._settle(provisioned)
                return ServiceResult.conflict(
                    ROOM_EXISTS_MESSAGE,
                    details={"floorId": floor.id, "roomNumber": payload.room_number},
                )

            room = self.repository.create(self._build_room(user_id, property_id, floor, payload))
            beds_after = self._refresh_usage(decision, property_id)
            self.db.commit()

        except EntityAlreadyExistsError:
            self.db.rollback()
            return ServiceResult.conflict(
                ROOM_EXISTS_MESSAGE,
                details={"floorId": payload.floor_id, "roomNumber": payload.room_number},
            )
        except Exception as e:
            self.db.rollback()
            return self._handle_exception(e, "create room", payload.room_number)

        self._logger.info(
            f"Room {payload.room_number} created with {payload.number_of_beds} beds on property {property_id}",
            extra={"subscriber_id": user_id, "property_id": property_id},
        )
        self._warn_if_near_limit(user_id, decision, beds_after)
        return ServiceResult.success(RoomResponse.from_model(room), message=SUCCESS_ROOM_CREATED)

    # =========================================================================
    # Bulk upload
    # =========================================================================

    def bulk_create_rooms(
        self,
        user_id: str,
        property_id: str,
        request: BulkRoomRequest,
    ) -> ServiceResult[BulkRoomResult]:
        """
        Create many rooms in one transaction.

        Rows on a missing floor fail and rows duplicating an existing
        room are skipped; neither counts toward the quota check. The
        remaining rows are checked once as a batch, and a breach aborts
        the whole upload before anything is written.
        """
        result = BulkRoomResult()
        created: List[Room] = []
        decision: Optional[EntitlementDecision] = None
        beds_after = 0

        try:
            with UnitOfWork(self.db) as uow:
                rooms = uow.get_repo(RoomRepository)
                candidates = self._classify_rows(property_id, request, rooms, result)

                if candidates:
                    decision, provisioned = self.entitlement.decide(
                        user_id,
                        property_id,
                        len(candidates),
                        sum(payload.number_of_beds for _, _, payload in candidates),
                        check_rooms=True,
                        for_update=True,
                    )
                    if not decision.allowed:
                        if provisioned:
                            uow.commit()
                        else:
                            uow.rollback()
                        return ServiceResult.quota_exceeded(decision.message, decision.to_wire())

                    for row, floor, payload in candidates:
                        try:
                            with uow.nested() as nested:
                                room = nested.get_repo(RoomRepository).create(
                                    self._build_room(user_id, property_id, floor, payload)
                                )
                        except EntityAlreadyExistsError:
                            result.skipped.append(self._outcome(row, payload, ROOM_EXISTS_MESSAGE))
                            continue
                        except RepositoryError as e:
                            result.failed.append(self._outcome(row, payload, e.message))
                            continue
                        created.append(room)

                    beds_after = self._refresh_usage(decision, property_id)

        except Exception as e:
            return self._handle_exception(e, "bulk create rooms", property_id)

        result.created = [RoomResponse.from_model(room) for room in created]
        result.summary = {
            "total": len(request.rooms),
            "created": len(result.created),
            "skipped": len(result.skipped),
            "failed": len(result.failed),
        }
        self._logger.info(
            f"Bulk upload for property {property_id}: {result.summary}",
            extra={"subscriber_id": user_id, "property_id": property_id},
        )
        if decision is not None and created:
            self._warn_if_near_limit(user_id, decision, beds_after)
        return ServiceResult.success(result, message=SUCCESS_BULK_PROCESSED)

    def _classify_rows(
        self,
        property_id: str,
        request: BulkRoomRequest,
        rooms: RoomRepository,
        result: BulkRoomResult,
    ) -> List[Tuple[int, Floor, RoomCreate]]:
        """Split rows into insert candidates, recording failed and skipped rows on ``result``."""
        floors: Dict[str, Optional[Floor]] = {}
        seen = set()
        candidates = []

        for row, payload in enumerate(request.rooms, start=1):
            if payload.floor_id not in floors:
                floors[payload.floor_id] = self.floors.find_for_property(payload.floor_id, property_id)
            floor = floors[payload.floor_id]
            if floor is None:
                result.failed.append(self._outcome(row, payload, FLOOR_NOT_FOUND_MESSAGE))
                continue

            key = (floor.id, payload.room_number)
            if key in seen or rooms.find_on_floor(*key) is not None:
                result.skipped.append(self._outcome(row, payload, ROOM_EXISTS_MESSAGE))
                continue

            seen.add(key)
            candidates.append((row, floor, payload))
        return candidates

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _build_room(user_id: str, property_id: str, floor: Floor, payload: RoomCreate) -> Room:
        return Room(
            property_id=property_id,
            floor_id=floor.id,
            room_number=payload.room_number,
            number_of_beds=payload.number_of_beds,
            room_type=payload.room_type,
            rent=payload.rent,
            created_by=user_id,
            beds=[Bed(bed_number=label) for label in bed_labels(payload.room_number, payload.number_of_beds)],
        )

    @staticmethod
    def _outcome(row: int, payload: RoomCreate, reason: str) -> BulkRowOutcome:
        return BulkRowOutcome(row=row, room_number=payload.room_number, reason=reason)

    def _settle(self, provisioned: bool) -> None:
        # A trial opened during the check survives a refusal
        if provisioned:
            self.db.commit()
        else:
            self.db.rollback()

    def _refresh_usage(self, decision: EntitlementDecision, property_id: str) -> int:
        beds = self.repository.sum_active_beds(property_id)
        subscription = self.subscriptions.find_by_id(decision.subscription_id)
        if subscription is not None:
            self.lifecycle.record_usage(subscription, beds)
        return beds

    def _warn_if_near_limit(self, user_id: str, decision: EntitlementDecision, beds_after: int) -> None:
        """Warn once, on the creation that crosses the warning threshold."""
        ceiling = decision.max_allowed_beds
        if self.notifier is None or not ceiling:
            return
        threshold = settings.USAGE_WARNING_THRESHOLD
        if decision.current_beds / ceiling < threshold <= beds_after / ceiling:
            self.notifier.usage_limit_warning(user_id, QuotaKind.BEDS, beds_after, ceiling)
