"""Labeled call transcripts for evaluating the scam scorer.

Each suite mixes known scam calls with ordinary ones so both missed scams
and false alarms show up in the report.
"""

from callguard.compliance import LabeledTranscript, TranscriptSuite


def impersonation_suite() -> TranscriptSuite:
    return TranscriptSuite(
        name="Authority and Tech-Support Impersonation",
        cases=[
            LabeledTranscript(
                transcript=(
                    "Caller: This is officer Daniels from the IRS. There is an arrest warrant in your name for tax fraud.\n"
                    "Agent: Who is this call for?\n"
                    "Caller: You need to pay immediately or the police will come today."
                ),
                expected_scam=True,
                category="government",
                description="IRS arrest threat with payment demand",
            ),
            LabeledTranscript(
                transcript=(
                    "Caller: Hello, I'm calling from Microsoft support. Your computer is infected.\n"
                    "Agent: How did you get this number?\n"
                    "Caller: Please give me your password so our tech support team can fix it."
                ),
                expected_scam=True,
                category="tech_support",
                description="Fake Microsoft support asking for a password",
            ),
            LabeledTranscript(
                transcript=(
                    "Caller: Grandma, it's me. I'm the grandson in jail, there was a family emergency.\n"
                    "Caller: Please send money by wire transfer, and don't tell mom."
                ),
                expected_scam=True,
                category="family",
                description="Grandparent scam",
            ),
            LabeledTranscript(
                transcript=(
                    "Caller: Hi, this is Dr. Patel's office confirming your appointment on Tuesday at ten.\n"
                    "Agent: I'll pass that along.\n"
                    "Caller: Great, no need to call back unless you need to reschedule."
                ),
                expected_scam=False,
                category="appointment",
                description="Appointment confirmation",
            ),
            LabeledTranscript(
                transcript=(
                    "Caller: Hey, it's Sam from next door. Your package was left on my porch.\n"
                    "Agent: Thanks, I'll let them know."
                ),
                expected_scam=False,
                category="personal",
                description="Neighbor calling about a package",
            ),
        ],
    )


def payment_suite() -> TranscriptSuite:
    return TranscriptSuite(
        name="Payment and Credential Harvesting",
        cases=[
            LabeledTranscript(
                transcript=(
                    "Caller: We noticed suspicious activity on your account. To verify your identity, read me "
                    "the security code on the back of your credit card."
                ),
                expected_scam=True,
                category="credentials",
                description="Fake bank fraud department asking for card code",
            ),
            LabeledTranscript(
                transcript=(
                    "Caller: Congratulations you won a cruise! To claim your prize just buy a gift card "
                    "for the processing fee. Act now, this is a limited time offer."
                ),
                expected_scam=True,
                category="prize",
                description="Prize scam paid with gift cards",
            ),
            LabeledTranscript(
                transcript=(
                    "Caller: You have a refund owed from your internet provider. "
                    "We just need your bank account number and routing number to deposit it."
                ),
                expected_scam=True,
                category="refund",
                description="Refund scam asking for bank details",
            ),
            LabeledTranscript(
                transcript=(
                    "Caller: This is the pharmacy, your prescription is ready for pickup.\n"
                    "Agent: Thank you, is there anything else?\n"
                    "Caller: No, that's all. Have a good day."
                ),
                expected_scam=False,
                category="pharmacy",
                description="Pharmacy pickup notice",
            ),
            LabeledTranscript(
                transcript=(
                    "Caller: Hi, I'm calling from the library. The book you reserved came in.\n"
                    "Agent: I'll let them know, thanks."
                ),
                expected_scam=False,
                category="personal",
                description="Library hold notice",
            ),
        ],
    )
