"""Names of the FE systems owned by ``IBFEMethod``; restart files depend on them."""

COORDS_SYSTEM_NAME = "IB coordinates system"
COORDS0_SYSTEM_NAME = "IB initial coordinates system"
COORD_MAPPING_SYSTEM_NAME = "IB coordinate mapping system"
VELOCITY_SYSTEM_NAME = "IB velocity system"
FORCE_SYSTEM_NAME = "IB force system"
FORCE_N_SYSTEM_NAME = "IB normal force system"
FORCE_T_SYSTEM_NAME = "IB tangential force system"
FORCE_B_SYSTEM_NAME = "IB binormal force system"
H_SYSTEM_NAME = "IB stress normalization system"

P_J_SYSTEM_NAME = "IB pressure jump system"
DP_J_SYSTEM_NAME = "IB normal pressure derivative jump system"
DU_J_SYSTEM_NAME = "IB x-velocity gradient jump system"
DV_J_SYSTEM_NAME = "IB y-velocity gradient jump system"
DW_J_SYSTEM_NAME = "IB z-velocity gradient jump system"
D2U_J_SYSTEM_NAME = "IB x-velocity second derivative jump system"
D2V_J_SYSTEM_NAME = "IB y-velocity second derivative jump system"
D2W_J_SYSTEM_NAME = "IB z-velocity second derivative jump system"

P_I_SYSTEM_NAME = "IB interior pressure system"
P_O_SYSTEM_NAME = "IB exterior pressure system"
TAU_SYSTEM_NAME = "IB fluid traction system"
WSS_I_SYSTEM_NAME = "IB interior wall shear stress system"
WSS_O_SYSTEM_NAME = "IB exterior wall shear stress system"
DU_Y_O_SYSTEM_NAME = "IB exterior du/dy system"
DV_X_O_SYSTEM_NAME = "IB exterior dv/dx system"
DU_Z_O_SYSTEM_NAME = "IB exterior du/dz system"
DV_Z_O_SYSTEM_NAME = "IB exterior dv/dz system"
DW_X_O_SYSTEM_NAME = "IB exterior dw/dx system"
DW_Y_O_SYSTEM_NAME = "IB exterior dw/dy system"

DU_J_SYSTEM_NAMES = (DU_J_SYSTEM_NAME, DV_J_SYSTEM_NAME, DW_J_SYSTEM_NAME)
D2U_J_SYSTEM_NAMES = (D2U_J_SYSTEM_NAME, D2V_J_SYSTEM_NAME, D2W_J_SYSTEM_NAME)

# Exterior velocity derivatives stored by the traction diagnostics: name -> (component, direction)
EXTERIOR_DERIVATIVE_SYSTEMS = {
    2: {
        DU_Y_O_SYSTEM_NAME: (0, 1),
        DV_X_O_SYSTEM_NAME: (1, 0),
    },
    3: {
        DU_Y_O_SYSTEM_NAME: (0, 1),
        DV_X_O_SYSTEM_NAME: (1, 0),
        DU_Z_O_SYSTEM_NAME: (0, 2),
        DV_Z_O_SYSTEM_NAME: (1, 2),
        DW_X_O_SYSTEM_NAME: (2, 0),
        DW_Y_O_SYSTEM_NAME: (2, 1),
    },
}
