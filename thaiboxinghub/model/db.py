from sqlalchemy import inspect
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from ..helpers import new_id, utcnow


class _Base:
    def to_dict(self) -> dict:
        # camelCase keys, same as the legacy column names
        mapper = inspect(type(self))
        return {
            attr.columns[0].name: getattr(self, attr.key)
            for attr in mapper.column_attrs
        }


Base = declarative_base(cls=_Base)


def _id():
    return Column("id", String, primary_key=True, default=new_id)


class Timestamps:
    created_at = Column("createdAt", DateTime, nullable=False, default=utcnow)
    updated_at = Column(
        "updatedAt", DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )


class SEO:
    meta_title = Column("metaTitle", Text)
    meta_description = Column("metaDescription", Text)
    keywords = Column("keywords", JSON)


# ----------------------------
# Status vocabularies
# ----------------------------
PAYMENT_PENDING = "PENDING"
PAYMENT_PROCESSING = "PROCESSING"
PAYMENT_COMPLETED = "COMPLETED"
PAYMENT_FAILED = "FAILED"
PAYMENT_CANCELLED = "CANCELLED"
PAYMENT_STATUSES = (
    PAYMENT_PENDING, PAYMENT_PROCESSING, PAYMENT_COMPLETED,
    PAYMENT_FAILED, PAYMENT_CANCELLED,
)

TICKET_STATUSES = ("ACTIVE", "USED", "CANCELLED")
ENROLLMENT_STATUSES = ("PENDING_PAYMENT", "CONFIRMED", "CANCELLED")
POST_STATUSES = ("DRAFT", "PUBLISHED", "ARCHIVED")
RECURRENCE_TYPES = ("none", "weekly", "monthly")


# ----------------------------
# ORM models
# ----------------------------
class Region(Timestamps, SEO, Base):
    __tablename__ = "Region"
    id = _id()
    name = Column("name", Text, nullable=False)
    slug = Column("slug", Text, nullable=False, unique=True)
    description = Column("description", Text)
    image_urls = Column("imageUrls", JSON)
    primary_image_index = Column("primaryImageIndex", Integer, default=0)


class Venue(Timestamps, SEO, Base):
    __tablename__ = "Venue"
    id = _id()
    name = Column("name", Text, nullable=False)
    address = Column("address", Text, nullable=False)
    capacity = Column("capacity", Integer)
    # restrict: a region cannot go away while venues point at it
    region_id = Column(
        "regionId", String,
        ForeignKey("Region.id", ondelete="RESTRICT"), nullable=False,
    )
    latitude = Column("latitude", Float)
    longitude = Column("longitude", Float)
    thumbnail_url = Column("thumbnailUrl", Text)
    image_urls = Column("imageUrls", JSON)
    is_featured = Column("isFeatured", Boolean, nullable=False, default=False)
    google_maps_url = Column("googleMapsUrl", Text)
    remarks = Column("remarks", Text)
    social_media_links = Column("socialMediaLinks", JSON)

    region = relationship("Region", lazy="raise")


class VenueType(Timestamps, Base):
    __tablename__ = "VenueType"
    id = _id()
    name = Column("name", Text, nullable=False)
    description = Column("description", Text)


class VenueToVenueType(Timestamps, Base):
    __tablename__ = "VenueToVenueType"
    __table_args__ = (
        UniqueConstraint(
            "venueId", "venueTypeId", name="venue_to_venue_type_unique_idx"
        ),
    )
    id = _id()
    venue_id = Column(
        "venueId", String,
        ForeignKey("Venue.id", ondelete="CASCADE"), nullable=False,
    )
    venue_type_id = Column(
        "venueTypeId", String,
        ForeignKey("VenueType.id", ondelete="CASCADE"), nullable=False,
    )
    is_primary = Column("isPrimary", Boolean, nullable=False, default=False)


class Event(Timestamps, SEO, Base):
    __tablename__ = "Event"
    id = _id()
    title = Column("title", Text, nullable=False)
    description = Column("description", Text)
    date = Column("date", DateTime, nullable=False)
    start_time = Column("startTime", DateTime, nullable=False)
    end_time = Column("endTime", DateTime)
    image_url = Column("imageUrl", Text)
    thumbnail_url = Column("thumbnailUrl", Text)
    image_urls = Column("imageUrls", JSON)
    uses_default_poster = Column(
        "usesDefaultPoster", Boolean, nullable=False, default=True
    )
    venue_id = Column(
        "venueId", String, ForeignKey("Venue.id", ondelete="SET NULL")
    )
    region_id = Column(
        "regionId", String, ForeignKey("Region.id", ondelete="SET NULL")
    )
    template_id = Column(
        "templateId", String,
        ForeignKey("EventTemplate.id", ondelete="SET NULL"),
    )
    status = Column("status", Text, nullable=False, default="SCHEDULED")

    venue = relationship("Venue", lazy="raise")
    region = relationship("Region", lazy="raise")
    ticket_types = relationship(
        "EventTicket", lazy="raise", passive_deletes=True,
        order_by="EventTicket.price",
    )


class EventTicket(Timestamps, Base):
    __tablename__ = "EventTicket"
    id = _id()
    event_id = Column(
        "eventId", String,
        ForeignKey("Event.id", ondelete="CASCADE"), nullable=False,
    )
    seat_type = Column("seatType", Text, nullable=False)
    price = Column("price", Float, nullable=False)
    discounted_price = Column("discountedPrice", Float)
    cost = Column("cost", Float)
    capacity = Column("capacity", Integer, nullable=False)
    description = Column("description", Text)
    sold_count = Column("soldCount", Integer, nullable=False, default=0)


class Fighter(Timestamps, Base):
    __tablename__ = "Fighter"
    id = _id()
    name = Column("name", Text, nullable=False)
    nickname = Column("nickname", Text)
    weight_class = Column("weightClass", Text)
    record = Column("record", Text)
    image_url = Column("imageUrl", Text)
    country = Column("country", Text)
    is_featured = Column("isFeatured", Boolean, nullable=False, default=False)


class User(Timestamps, Base):
    __tablename__ = "User"
    id = _id()
    email = Column("email", Text, nullable=False, unique=True)
    name = Column("name", Text)
    image = Column("image", Text)
    role = Column("role", Text, default="user")


class Instructor(Timestamps, Base):
    __tablename__ = "Instructor"
    id = _id()
    name = Column("name", Text, nullable=False)
    bio = Column("bio", Text)
    image_url = Column("imageUrl", Text)
    expertise = Column("expertise", JSON)
    user_id = Column(
        "userId", String, ForeignKey("User.id", ondelete="SET NULL")
    )


class TrainingCourse(Timestamps, SEO, Base):
    __tablename__ = "TrainingCourse"
    id = _id()
    title = Column("title", Text, nullable=False)
    slug = Column("slug", Text, nullable=False, unique=True)
    description = Column("description", Text)
    skill_level = Column("skillLevel", Text)
    duration = Column("duration", Text)
    schedule_details = Column("scheduleDetails", Text)
    price = Column("price", Float, nullable=False)
    capacity = Column("capacity", Integer)
    venue_id = Column(
        "venueId", String, ForeignKey("Venue.id", ondelete="SET NULL")
    )
    region_id = Column(
        "regionId", String,
        ForeignKey("Region.id", ondelete="RESTRICT"), nullable=False,
    )
    instructor_id = Column(
        "instructorId", String,
        ForeignKey("Instructor.id", ondelete="SET NULL"),
    )
    image_urls = Column("imageUrls", JSON)
    primary_image_index = Column("primaryImageIndex", Integer, default=0)
    is_active = Column("isActive", Boolean, nullable=False, default=True)
    is_featured = Column("isFeatured", Boolean, nullable=False, default=False)

    region = relationship("Region", lazy="raise")
    venue = relationship("Venue", lazy="raise")
    instructor = relationship("Instructor", lazy="raise")


class Category(Timestamps, Base):
    __tablename__ = "Category"
    id = _id()
    name = Column("name", Text, nullable=False)
    slug = Column("slug", Text, nullable=False, unique=True)
    description = Column("description", Text)


class Product(Timestamps, Base):
    __tablename__ = "Product"
    id = _id()
    name = Column("name", Text, nullable=False)
    description = Column("description", Text)
    price = Column("price", Float, nullable=False)
    thumbnail_url = Column("thumbnailUrl", Text)
    image_urls = Column("imageUrls", JSON)
    category_id = Column(
        "categoryId", String, ForeignKey("Category.id", ondelete="SET NULL")
    )
    is_featured = Column("isFeatured", Boolean, nullable=False, default=False)


class ProductToCategory(Timestamps, Base):
    __tablename__ = "ProductToCategory"
    __table_args__ = (
        UniqueConstraint(
            "productId", "categoryId", name="product_to_category_unique_idx"
        ),
    )
    id = _id()
    product_id = Column(
        "productId", String,
        ForeignKey("Product.id", ondelete="CASCADE"), nullable=False,
    )
    category_id = Column(
        "categoryId", String,
        ForeignKey("Category.id", ondelete="CASCADE"), nullable=False,
    )


class Customer(Timestamps, Base):
    __tablename__ = "Customer"
    __table_args__ = (Index("customer_email_idx", "email"),)
    id = _id()
    user_id = Column(
        "userId", String, ForeignKey("User.id", ondelete="SET NULL")
    )
    name = Column("name", Text, nullable=False)
    email = Column("email", Text, nullable=False)
    phone = Column("phone", Text)


class Booking(Timestamps, Base):
    __tablename__ = "Booking"
    id = _id()
    customer_id = Column(
        "customerId", String,
        ForeignKey("Customer.id", ondelete="RESTRICT"), nullable=False,
    )
    event_id = Column(
        "eventId", String,
        ForeignKey("Event.id", ondelete="CASCADE"), nullable=False,
    )
    total_amount = Column("totalAmount", Float, nullable=False)

    # PENDING | PROCESSING | COMPLETED | FAILED | CANCELLED
    payment_status = Column(
        "paymentStatus", Text, nullable=False, default=PAYMENT_PENDING
    )
    payment_order_no = Column("paymentOrderNo", Text, index=True)
    payment_transaction_id = Column("paymentTransactionId", Text)
    payment_bank_code = Column("paymentBankCode", Text)
    payment_bank_ref_code = Column("paymentBankRefCode", Text)
    payment_date = Column("paymentDate", Text)
    payment_method = Column("paymentMethod", Text)

    # snapshots survive later edits of customer/event rows
    customer_name_snapshot = Column("customerNameSnapshot", Text)
    customer_email_snapshot = Column("customerEmailSnapshot", Text)
    customer_phone_snapshot = Column("customerPhoneSnapshot", Text)
    event_title_snapshot = Column("eventTitleSnapshot", Text)
    event_date_snapshot = Column("eventDateSnapshot", DateTime)
    venue_name_snapshot = Column("venueNameSnapshot", Text)
    region_name_snapshot = Column("regionNameSnapshot", Text)
    booking_items_json = Column("bookingItemsJson", JSON)


class Ticket(Timestamps, Base):
    __tablename__ = "Ticket"
    id = _id()
    event_id = Column(
        "eventId", String, ForeignKey("Event.id"), nullable=False
    )
    event_detail_id = Column(
        "eventDetailId", String,
        ForeignKey("EventTicket.id", ondelete="RESTRICT"), nullable=False,
    )
    booking_id = Column(
        "bookingId", String,
        ForeignKey("Booking.id", ondelete="CASCADE"), nullable=False,
    )
    # ACTIVE | USED | CANCELLED
    status = Column("status", Text, nullable=False, default="ACTIVE")


class CourseEnrollment(Timestamps, Base):
    __tablename__ = "CourseEnrollment"
    id = _id()
    customer_id = Column(
        "customerId", String,
        ForeignKey("Customer.id", ondelete="RESTRICT"), nullable=False,
    )
    course_id = Column(
        "courseId", String,
        ForeignKey("TrainingCourse.id", ondelete="CASCADE"), nullable=False,
    )
    price_paid = Column("pricePaid", Float, nullable=False)
    # PENDING_PAYMENT | CONFIRMED | CANCELLED
    status = Column("status", Text, nullable=False, default="PENDING_PAYMENT")
    enrollment_date = Column(
        "enrollmentDate", DateTime, nullable=False, default=utcnow
    )
    start_date = Column("startDate", DateTime)
    course_title_snapshot = Column("courseTitleSnapshot", Text)
    customer_name_snapshot = Column("customerNameSnapshot", Text)
    customer_email_snapshot = Column("customerEmailSnapshot", Text)


class EventTemplate(Timestamps, Base):
    __tablename__ = "EventTemplate"
    id = _id()
    template_name = Column("templateName", Text, nullable=False)
    venue_id = Column(
        "venueId", String, ForeignKey("Venue.id", ondelete="RESTRICT")
    )
    region_id = Column(
        "regionId", String, ForeignKey("Region.id", ondelete="RESTRICT")
    )
    default_title_format = Column("defaultTitleFormat", Text)
    default_description = Column("defaultDescription", Text)

    # none | weekly | monthly
    recurrence_type = Column(
        "recurrenceType", String, nullable=False, default="none"
    )
    # 0 = Sunday .. 6 = Saturday
    recurring_days_of_week = Column("recurringDaysOfWeek", JSON)
    day_of_month = Column("dayOfMonth", JSON)

    # "HH:MM", venue-local
    default_start_time = Column("defaultStartTime", String(5))
    default_end_time = Column("defaultEndTime", String(5))

    is_active = Column("isActive", Boolean, nullable=False, default=True)
    start_date = Column("startDate", DateTime)
    end_date = Column("endDate", DateTime)

    venue = relationship("Venue", lazy="raise")
    region = relationship("Region", lazy="raise")
    tickets = relationship(
        "EventTemplateTicket", lazy="raise", passive_deletes=True,
        order_by="EventTemplateTicket.seat_type",
    )


class EventTemplateTicket(Timestamps, Base):
    __tablename__ = "EventTemplateTicket"
    id = _id()
    event_template_id = Column(
        "eventTemplateId", String,
        ForeignKey("EventTemplate.id", ondelete="CASCADE"), nullable=False,
    )
    seat_type = Column("seatType", Text, nullable=False)
    default_price = Column("defaultPrice", Float, nullable=False)
    default_capacity = Column("defaultCapacity", Integer, nullable=False)
    default_description = Column("defaultDescription", Text)


class Post(Timestamps, SEO, Base):
    __tablename__ = "Post"
    id = _id()
    slug = Column("slug", Text, nullable=False, unique=True)
    title = Column("title", Text, nullable=False)
    content = Column("content", Text, nullable=False)
    excerpt = Column("excerpt", Text)
    featured_image_url = Column("featuredImageUrl", Text)
    is_featured = Column("isFeatured", Boolean, nullable=False, default=False)
    published_at = Column("publishedAt", DateTime)
    # DRAFT | PUBLISHED | ARCHIVED
    status = Column("status", Text, nullable=False, default="DRAFT")
    region_id = Column(
        "regionId", String, ForeignKey("Region.id", ondelete="SET NULL")
    )
    author_id = Column(
        "authorId", String, ForeignKey("User.id", ondelete="SET NULL")
    )
