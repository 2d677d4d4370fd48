"""
General-purpose helpers not related to the operator itself
(neither to the reactor nor to the engines nor to the structs),
which are used to prepare and control the runtime environment.

Helpers do not depend on anything else in the operator. They do not
implement any entities or behaviours of the Trustee deployment domain,
but rather some unrelated low-level patterns.
"""
