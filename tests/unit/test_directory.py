"""Tests for the market and member directory."""

import pytest

from paychannels.crypto.signatures import ZERO_ADDRESS, PrivateKey
from paychannels.crypto.typed_data import (
    MarketCreate,
    MarketJoin,
    MemberRegister,
    TypedDataSigner,
    TypedDomain,
)
from paychannels.directory import ActorType, InMemoryDirectory, MemberLevel
from paychannels.errors import PreconditionError, SignatureError, ValidationError
from paychannels.state_channels import ChannelOpened, ChannelType

MARKET_ID = b"\x0a" * 16


class TestMemberLevel:
    """Test MemberLevel helpers."""

    def test_good_standing(self):
        """Test only ACTIVE and VERIFIED are in good standing."""
        good = {level for level in MemberLevel if level.in_good_standing}
        assert good == {MemberLevel.ACTIVE, MemberLevel.VERIFIED}


class DirectoryTestBase:
    """Shared directory fixtures."""

    def setup_method(self):
        """Set up test fixtures."""
        domain = TypedDomain(
            name="XBR",
            version="1",
            chain_id=1,
            verifying_contract=PrivateKey.generate().address,
        )
        self.signer = TypedDataSigner(domain)
        self.now = 1000
        self.directory = InMemoryDirectory(signer=self.signer, clock=lambda: self.now)
        self.owner = PrivateKey.generate()
        self.maker = PrivateKey.generate()
        self.member = PrivateKey.generate()
        self.coin = PrivateKey.generate().address

    def create_market(self, **overrides):
        params = dict(
            owner=self.owner.address,
            market_id=MARKET_ID,
            coin=self.coin,
            terms="QmTerms",
            meta="QmMeta",
            maker=self.maker.address,
            consumer_security=10,
        )
        params.update(overrides)
        return self.directory.create_market(**params)


class TestMembers(DirectoryTestBase):
    """Test member registration and levels."""

    def test_register(self):
        """Test registering a member."""
        member = self.directory.register_member(self.member.address, eula="QmEula")
        assert member.registered == 1000
        assert self.directory.member_level(self.member.address) == MemberLevel.ACTIVE

    def test_unknown_member_is_null(self):
        """Test unknown addresses have level NULL."""
        assert self.directory.member_level(self.member.address) == MemberLevel.NULL

    def test_register_twice(self):
        """Test members are created once."""
        self.directory.register_member(self.member.address, eula="QmEula")
        with pytest.raises(PreconditionError) as exc_info:
            self.directory.register_member(self.member.address, eula="QmEula")
        assert exc_info.value.reason == "MEMBER_ALREADY_REGISTERED"

    def test_register_zero_address(self):
        """Test the zero address cannot register."""
        with pytest.raises(ValidationError) as exc_info:
            self.directory.register_member(ZERO_ADDRESS, eula="QmEula")
        assert exc_info.value.reason == "INVALID_ADDRESS"

    def test_relayed_registration(self):
        """Test registration with the member's signature."""
        message = MemberRegister(
            member=self.member.address, registered=500, eula="QmEula", profile="QmProfile"
        )
        signature = self.signer.sign(self.member, message)
        member = self.directory.register_member(
            self.member.address,
            eula="QmEula",
            profile="QmProfile",
            registered=500,
            signature=signature,
        )
        assert member.signature == signature

    def test_relayed_registration_wrong_signer(self):
        """Test a registration signed by someone else is rejected."""
        message = MemberRegister(member=self.member.address, registered=500, eula="QmEula", profile="")
        signature = self.signer.sign(self.owner, message)
        with pytest.raises(SignatureError):
            self.directory.register_member(
                self.member.address, eula="QmEula", registered=500, signature=signature
            )
        assert self.directory.get_member(self.member.address) is None

    def test_set_member_level(self):
        """Test overriding a member's level."""
        self.directory.register_member(self.member.address, eula="QmEula")
        self.directory.set_member_level(self.member.address, MemberLevel.BLOCKED)
        assert self.directory.member_level(self.member.address) == MemberLevel.BLOCKED

    def test_set_level_unknown_member(self):
        """Test the level of an unregistered address cannot be set."""
        with pytest.raises(PreconditionError) as exc_info:
            self.directory.set_member_level(self.member.address, MemberLevel.VERIFIED)
        assert exc_info.value.reason == "NO_SUCH_MEMBER"

    def test_set_level_null(self):
        """Test a member cannot be reset to NULL."""
        self.directory.register_member(self.member.address, eula="QmEula")
        with pytest.raises(ValidationError) as exc_info:
            self.directory.set_member_level(self.member.address, MemberLevel.NULL)
        assert exc_info.value.reason == "INVALID_MEMBER_LEVEL"


class TestMarkets(DirectoryTestBase):
    """Test market creation."""

    def setup_method(self):
        """Set up test fixtures."""
        super().setup_method()
        self.directory.register_member(self.owner.address, eula="QmEula")

    def test_create_market(self):
        """Test creating a market."""
        self.create_market()
        assert self.directory.market_owner(MARKET_ID) == self.owner.address
        assert self.directory.market_maker(MARKET_ID) == self.maker.address

    def test_unknown_market(self):
        """Test queries on unknown markets."""
        assert self.directory.market_owner(b"\x00" * 16) is None
        assert self.directory.market_maker(b"\x00" * 16) is None
        assert not self.directory.is_joined_consumer(b"\x00" * 16, self.member.address)

    def test_owner_must_be_member(self):
        """Test non-members cannot create markets."""
        with pytest.raises(PreconditionError) as exc_info:
            self.create_market(owner=self.member.address)
        assert exc_info.value.reason == "NO_SUCH_MEMBER"

    def test_blocked_owner(self):
        """Test members not in good standing cannot create markets."""
        self.directory.set_member_level(self.owner.address, MemberLevel.PENALTY)
        with pytest.raises(PreconditionError):
            self.create_market()

    def test_duplicate_market(self):
        """Test market ids are unique."""
        self.create_market()
        with pytest.raises(PreconditionError) as exc_info:
            self.create_market(maker=PrivateKey.generate().address)
        assert exc_info.value.reason == "MARKET_ALREADY_EXISTS"

    def test_maker_serves_one_market(self):
        """Test a maker cannot serve two markets."""
        self.create_market()
        with pytest.raises(PreconditionError) as exc_info:
            self.create_market(market_id=b"\x0b" * 16)
        assert exc_info.value.reason == "MAKER_ALREADY_WORKING_FOR_OTHER_MARKET"

    def test_zero_maker(self):
        """Test a market needs a maker."""
        with pytest.raises(PreconditionError) as exc_info:
            self.create_market(maker=ZERO_ADDRESS)
        assert exc_info.value.reason == "INVALID_MAKER"

    def test_bad_market_id(self):
        """Test market ids are 16 bytes."""
        with pytest.raises(ValidationError) as exc_info:
            self.create_market(market_id=b"\x0a" * 15)
        assert exc_info.value.reason == "INVALID_MARKET_ID"

    def test_negative_fee(self):
        """Test the market fee cannot be negative."""
        with pytest.raises(ValidationError) as exc_info:
            self.create_market(market_fee=-1)
        assert exc_info.value.reason == "INVALID_MARKET_FEE"

    def test_signed_market_creation(self):
        """Test creating a market with the owner's signature."""
        message = MarketCreate(
            member=self.owner.address,
            created=1000,
            market_id=MARKET_ID,
            coin=self.coin,
            terms="QmTerms",
            meta="QmMeta",
            maker=self.maker.address,
            provider_security=0,
            consumer_security=10,
            market_fee=0,
        )
        market = self.create_market(signature=self.signer.sign(self.owner, message))
        assert market.signature is not None

    def test_signed_market_creation_tampered(self):
        """Test a signature over different terms is rejected."""
        message = MarketCreate(
            member=self.owner.address,
            created=1000,
            market_id=MARKET_ID,
            coin=self.coin,
            terms="QmOtherTerms",
            meta="QmMeta",
            maker=self.maker.address,
            provider_security=0,
            consumer_security=10,
            market_fee=0,
        )
        with pytest.raises(SignatureError):
            self.create_market(signature=self.signer.sign(self.owner, message))
        assert self.directory.get_market(MARKET_ID) is None


class TestJoinMarket(DirectoryTestBase):
    """Test joining markets."""

    def setup_method(self):
        """Set up test fixtures."""
        super().setup_method()
        self.directory.register_member(self.owner.address, eula="QmEula")
        self.directory.register_member(self.member.address, eula="QmEula")
        self.create_market()

    def test_join_as_consumer(self):
        """Test joining the consumer roster."""
        actor = self.directory.join_market(
            self.member.address, MARKET_ID, ActorType.CONSUMER, security=10
        )
        assert actor.joined == 1000
        assert self.directory.is_joined_consumer(MARKET_ID, self.member.address)
        assert not self.directory.is_joined_provider(MARKET_ID, self.member.address)

    def test_join_both_roles(self):
        """Test one member may hold both roles."""
        self.directory.join_market(self.member.address, MARKET_ID, ActorType.CONSUMER, security=10)
        self.directory.join_market(self.member.address, MARKET_ID, ActorType.PROVIDER)
        assert self.directory.is_joined_provider(MARKET_ID, self.member.address)

    def test_join_twice_same_role(self):
        """Test one roster entry per role."""
        self.directory.join_market(self.member.address, MARKET_ID, ActorType.PROVIDER)
        with pytest.raises(PreconditionError) as exc_info:
            self.directory.join_market(self.member.address, MARKET_ID, ActorType.PROVIDER)
        assert exc_info.value.reason == "ACTOR_ALREADY_JOINED"

    def test_insufficient_security(self):
        """Test the security deposit minimum."""
        with pytest.raises(PreconditionError) as exc_info:
            self.directory.join_market(
                self.member.address, MARKET_ID, ActorType.CONSUMER, security=9
            )
        assert exc_info.value.reason == "INSUFFICIENT_SECURITY_DEPOSIT"

    def test_unknown_market(self):
        """Test joining an unknown market."""
        with pytest.raises(PreconditionError) as exc_info:
            self.directory.join_market(self.member.address, b"\x0c" * 16, ActorType.PROVIDER)
        assert exc_info.value.reason == "NO_SUCH_MARKET"

    def test_invalid_actor_type(self):
        """Test unknown roles are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            self.directory.join_market(self.member.address, MARKET_ID, 7)
        assert exc_info.value.reason == "INVALID_ACTOR_TYPE"

    def test_non_member(self):
        """Test non-members cannot join."""
        outsider = PrivateKey.generate().address
        with pytest.raises(PreconditionError) as exc_info:
            self.directory.join_market(outsider, MARKET_ID, ActorType.PROVIDER)
        assert exc_info.value.reason == "NO_SUCH_MEMBER"

    def test_signed_join(self):
        """Test joining with the member's signature."""
        message = MarketJoin(
            member=self.member.address,
            joined=1000,
            market_id=MARKET_ID,
            actor_type=int(ActorType.PROVIDER),
            meta="QmActorMeta",
        )
        signature = self.signer.sign(self.member, message)
        actor = self.directory.join_market(
            self.member.address,
            MARKET_ID,
            ActorType.PROVIDER,
            meta="QmActorMeta",
            signature=signature,
        )
        assert actor.signature == signature

    def test_signed_join_wrong_role(self):
        """Test a signature for one role does not join another."""
        message = MarketJoin(
            member=self.member.address,
            joined=1000,
            market_id=MARKET_ID,
            actor_type=int(ActorType.PROVIDER),
            meta="",
        )
        signature = self.signer.sign(self.member, message)
        with pytest.raises(SignatureError):
            self.directory.join_market(
                self.member.address, MARKET_ID, ActorType.CONSUMER, security=10, signature=signature
            )

    def test_channel_opened_recorded_on_roster(self):
        """Test opened channels are recorded on the paying actor's entry."""
        self.directory.join_market(self.member.address, MARKET_ID, ActorType.CONSUMER, security=10)
        event = ChannelOpened(
            channel_id=b"\x01" * 16,
            ctype=ChannelType.PAYMENT,
            market_id=MARKET_ID,
            seq=1,
            market_maker=self.maker.address,
            actor=self.member.address,
            delegate=PrivateKey.generate().address,
            recipient=self.owner.address,
            amount=100,
            timeout=0,
            signature=b"",
        )
        self.directory.on_channel_opened(event)
        self.directory.on_channel_opened(event)
        market = self.directory.get_market(MARKET_ID)
        assert market.consumers[self.member.address].channels == [b"\x01" * 16]

    def test_market_to_dict(self):
        """Test market serialization."""
        self.directory.join_market(self.member.address, MARKET_ID, ActorType.PROVIDER)
        data = self.directory.get_market(MARKET_ID).to_dict()
        assert data["market_id"] == MARKET_ID.hex()
        assert data["providers"][self.member.address]["actor_type"] == "PROVIDER"
